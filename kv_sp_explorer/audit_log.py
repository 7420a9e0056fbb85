"""
Audit trail for the explorer.

Two append-only files are kept:
  - the operational log, one line per action, tagged with the identity the
    tool is currently acting as
  - the exposure log, one line per username that had a secret value shown
    to the operator or successfully used as its password

Both are written through the standard logging machinery. Every module logger
under the ``kv_sp_explorer`` package feeds the operational log, so
``logger.info(...)`` anywhere in the package is an audit record.
"""
import logging
import sys
from collections import deque
from pathlib import Path
from typing import List, Union

from .session import SessionState

OPERATIONAL_LOGGER = "kv_sp_explorer"
EXPOSURE_LOGGER = "kv_sp_explorer_exposure"

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
OPERATIONAL_FORMAT = "%(asctime)s - user:%(identity)s - %(error_tag)s%(message)s"
EXPOSURE_FORMAT = "%(asctime)s - %(message)s"
CONSOLE_FORMAT = "[ %(asctime)s ] ERROR - %(message)s"

# Reason tags written to the exposure log
REASON_DISPLAYED = "secret"
REASON_LOGIN = "password_extracted_from"


class AuditWriteError(Exception):
    """The audit trail could not be written. Always fatal."""
    pass


class _AuditFileHandler(logging.FileHandler):
    """File handler that refuses to drop records silently."""

    def __init__(self, filename: Union[str, Path]):
        super().__init__(filename, mode="a", encoding="utf-8")

    def handleError(self, record: logging.LogRecord) -> None:
        exc = sys.exc_info()[1]
        raise AuditWriteError(f"Could not write to {self.baseFilename}") from exc


class _IdentityFilter(logging.Filter):
    """Stamp each record with the identity currently in use."""

    def __init__(self, state: SessionState):
        super().__init__()
        self.state = state

    def filter(self, record: logging.LogRecord) -> bool:
        record.identity = self.state.label
        record.error_tag = "ERROR - " if record.levelno >= logging.ERROR else ""
        return True


def _reset_logger(target: logging.Logger) -> None:
    for handler in list(target.handlers):
        target.removeHandler(handler)
        handler.close()


class AuditLog:
    """Writer for the operational and exposure logs."""

    def __init__(self, log_file: Union[str, Path], exposure_log_file: Union[str, Path],
                 state: SessionState, mirror_errors: bool = True):
        self.log_file = Path(log_file)
        self.exposure_log_file = Path(exposure_log_file)
        self.state = state

        self._logger = logging.getLogger(OPERATIONAL_LOGGER)
        self._exposure = logging.getLogger(EXPOSURE_LOGGER)
        _reset_logger(self._logger)
        _reset_logger(self._exposure)

        try:
            file_handler = _AuditFileHandler(self.log_file)
            exposure_handler = _AuditFileHandler(self.exposure_log_file)
        except OSError as e:
            raise AuditWriteError(f"Could not open audit log: {e}") from e

        file_handler.addFilter(_IdentityFilter(state))
        file_handler.setFormatter(logging.Formatter(OPERATIONAL_FORMAT, datefmt=DATE_FORMAT))
        self._logger.addHandler(file_handler)

        if mirror_errors:
            console = logging.StreamHandler(sys.stderr)
            console.setLevel(logging.ERROR)
            console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
            self._logger.addHandler(console)

        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False

        exposure_handler.setFormatter(logging.Formatter(EXPOSURE_FORMAT, datefmt=DATE_FORMAT))
        self._exposure.addHandler(exposure_handler)
        self._exposure.setLevel(logging.INFO)
        self._exposure.propagate = False

    def record(self, event: str) -> None:
        """Append an event to the operational log."""
        self._logger.info(event)

    def record_error(self, event: str) -> None:
        """Append an error to the operational log and show it on stderr."""
        self._logger.error(event)

    def record_exposure(self, username: str, reason: str, secret_name: str, vault_name: str) -> None:
        """
        Note that a username had a secret value exposed or tested against it.

        Args:
            username: Account the value is associated with
            reason: REASON_DISPLAYED or REASON_LOGIN
            secret_name: Secret the value came from
            vault_name: Vault holding the secret
        """
        self._exposure.info(f"{username} - {reason}:{secret_name} - vault:{vault_name}")

    def tail(self, exposure: bool = False, lines: int = 200) -> List[str]:
        """Return the last lines of one of the logs."""
        path = self.exposure_log_file if exposure else self.log_file
        try:
            with path.open("r", encoding="utf-8", errors="replace") as f:
                return [line.rstrip("\n") for line in deque(f, maxlen=lines)]
        except FileNotFoundError:
            return []

    def close(self) -> None:
        _reset_logger(self._logger)
        _reset_logger(self._exposure)
