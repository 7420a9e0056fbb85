"""
Runtime configuration for the explorer.

Values come from an optional dotenv-style file (``kv_explorer.env`` in the
working directory, or the file named by ``KV_EXPLORER_CONFIG``). Environment
variables take precedence over the file.

Configuration is read before the audit log exists, so problems found while
reading it are kept in ``ExplorerConfig.warnings`` and recorded at startup.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from dotenv import dotenv_values

DEFAULT_CONFIG_FILE = "kv_explorer.env"
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_LOG_FILE = "./script.log"
DEFAULT_EXPOSURE_LOG_FILE = "./readPass.log"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class ExplorerConfig:
    """Settings read once at startup"""
    tenant_id: Optional[str] = None
    command_timeout: int = DEFAULT_TIMEOUT_SECONDS
    log_secret_values: bool = False
    log_file: Path = field(default_factory=lambda: Path(DEFAULT_LOG_FILE))
    exposure_log_file: Path = field(default_factory=lambda: Path(DEFAULT_EXPOSURE_LOG_FILE))
    warnings: List[str] = field(default_factory=list, compare=False, repr=False)

    @classmethod
    def from_env(cls, config_file: Optional[str] = None,
                 environ: Optional[Mapping[str, str]] = None) -> "ExplorerConfig":
        """
        Build the configuration from the config file and the environment.

        Args:
            config_file: Path of the dotenv file; defaults to KV_EXPLORER_CONFIG or kv_explorer.env
            environ: Environment mapping, os.environ when omitted

        Returns:
            ExplorerConfig instance. A missing or unreadable config file is not
            an error; the environment alone is used and a warning is kept.
        """
        env = os.environ if environ is None else environ
        path = Path(config_file or env.get("KV_EXPLORER_CONFIG") or DEFAULT_CONFIG_FILE)
        warnings: List[str] = []

        values = {}
        if path.is_file():
            try:
                values.update({k: v for k, v in dotenv_values(path).items() if v is not None})
            except (OSError, UnicodeDecodeError) as e:
                warnings.append(f"Ignoring unreadable config file {path} ({type(e).__name__})")
        values.update(env)

        tenant_id = values.get("AZURE_TENANT_ID") or None
        return cls(
            tenant_id=tenant_id,
            command_timeout=_parse_timeout(values.get("AZ_CMD_TIMEOUT_SECONDS"), warnings),
            log_secret_values=_parse_bool(values.get("LOG_SECRET_VALUES")),
            log_file=Path(values.get("KV_EXPLORER_LOG_FILE") or DEFAULT_LOG_FILE),
            exposure_log_file=Path(values.get("KV_EXPLORER_EXPOSURE_LOG") or DEFAULT_EXPOSURE_LOG_FILE),
            warnings=warnings,
        )


def _parse_bool(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in _TRUE_VALUES


def _parse_timeout(value: Optional[str], warnings: List[str]) -> int:
    if value is None or not value.strip():
        return DEFAULT_TIMEOUT_SECONDS
    try:
        timeout = int(value)
    except ValueError:
        warnings.append(f"Ignoring invalid AZ_CMD_TIMEOUT_SECONDS value, using {DEFAULT_TIMEOUT_SECONDS}")
        return DEFAULT_TIMEOUT_SECONDS
    if timeout <= 0:
        warnings.append(f"AZ_CMD_TIMEOUT_SECONDS must be positive, using {DEFAULT_TIMEOUT_SECONDS}")
        return DEFAULT_TIMEOUT_SECONDS
    return timeout
