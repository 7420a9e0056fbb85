"""
Azure identity and Key Vault access through the Azure CLI.
All calls shell out to ``az`` with a bounded wait; nothing here raises on a
failed call, callers get None/False and the failure is in the audit log.
"""
import json
import logging
import shutil
import subprocess
from typing import Any, List, Optional, Tuple

from .command_log import has_sensitive_flag, redact_command
from .config import DEFAULT_TIMEOUT_SECONDS
from .models import ActiveSession, LoginKind, SessionIdentity, Subscription, VaultEntry

logger = logging.getLogger(__name__)

# Longest stderr excerpt copied into the audit log
STDERR_EXCERPT = 400


class AzureCli:
    """Client for the az CLI used by the explorer."""

    def __init__(self, timeout: int = DEFAULT_TIMEOUT_SECONDS, executable: str = "az"):
        self.timeout = timeout
        self.executable = executable

    def is_available(self) -> bool:
        """Check that the az executable is on PATH."""
        return shutil.which(self.executable) is not None

    def _run_azure_cli(self, command: List[str], description: str) -> Tuple[bool, str]:
        """
        Run an Azure CLI command.

        Args:
            command: Command parts after the executable
            description: Short action label for the audit log

        Returns:
            Tuple of (success, output). Output is stdout on success, stderr or
            an error label on failure.
        """
        full_command = [self.executable] + command
        logger.info(f"START: {description} :: {redact_command(full_command)}")

        try:
            result = subprocess.run(
                full_command,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout
            )
        except subprocess.TimeoutExpired:
            logger.error(f"FAIL/Timeout: {description} (no answer after {self.timeout} seconds)")
            return False, "Command timeout"
        except OSError as e:
            logger.error(f"FAIL: {description} ({type(e).__name__})")
            return False, str(e)

        if result.returncode == 0:
            logger.info(f"OK: {description}")
            return True, (result.stdout or "").rstrip("\r\n")

        logger.error(f"FAIL: {description} (exit code {result.returncode})")
        stderr = (result.stderr or "").strip()
        # Error text of a credential-bearing call may echo its arguments
        if stderr and not has_sensitive_flag(full_command):
            logger.info(f"az stderr: {stderr[:STDERR_EXCERPT]}")
        return False, stderr

    def _run_json(self, command: List[str], description: str) -> Optional[Any]:
        success, output = self._run_azure_cli(command + ["--output", "json"], description)
        if not success:
            return None
        try:
            return json.loads(output) if output else []
        except json.JSONDecodeError:
            logger.error(f"FAIL: {description} (unparseable JSON output)")
            return None

    def version(self) -> Optional[str]:
        """Return the az version report flattened to one line."""
        success, output = self._run_azure_cli(["version"], "az version")
        if not success:
            return None
        return " ".join(output.split())

    # ---------------- Identity ----------------

    def login_service_principal(self, app_id: str, password: str, tenant: str) -> bool:
        """Log in as a service principal."""
        cmd = [
            "login", "--service-principal",
            "--username", app_id,
            "--password", password,
            "--tenant", tenant,
            "--output", "none"
        ]
        success, _ = self._run_azure_cli(cmd, "az login (SP)")
        return success

    def login_user(self, username: str, password: str, tenant: Optional[str] = None) -> bool:
        """Log in as a user with a username and password."""
        cmd = ["login", "-u", username, "-p", password]
        if tenant:
            cmd.extend(["--tenant", tenant])
        cmd.extend(["--output", "none"])
        success, _ = self._run_azure_cli(cmd, f"az login (target {username})")
        return success

    def current_session(self) -> Optional[SessionIdentity]:
        """Return the identity of the default az account, or None if logged out."""
        account = self._run_json(["account", "show"], "az account show")
        if not isinstance(account, dict):
            return None
        user = account.get("user") or {}
        if not user.get("name"):
            return None
        return SessionIdentity(user["name"], LoginKind.from_az(user.get("type")))

    def list_active_sessions(self) -> Optional[List[ActiveSession]]:
        """
        List every account entry az knows about.

        Returns:
            One ActiveSession per (account, subscription) entry, or None on failure
        """
        accounts = self._run_json(["account", "list"], "az account list")
        if accounts is None:
            return None
        sessions = []
        for account in accounts:
            user = account.get("user") or {}
            if not user.get("name"):
                continue
            sessions.append(ActiveSession(
                name=user["name"],
                kind=LoginKind.from_az(user.get("type")),
                tenant=account.get("tenantId") or "",
                subscription_id=account.get("id")
            ))
        return sessions

    def logout(self, username: Optional[str] = None) -> bool:
        """Log out one account, or the default account when no username is given."""
        cmd = ["logout"]
        if username:
            cmd.extend(["--username", username])
        success, _ = self._run_azure_cli(cmd, f"az logout {username}" if username else "az logout")
        return success

    # ---------------- Subscriptions ----------------

    def list_subscriptions(self) -> Optional[List[Subscription]]:
        accounts = self._run_json(["account", "list"], "az account list (subscriptions)")
        if accounts is None:
            return None
        return [
            Subscription(
                name=account.get("name") or "",
                id=account.get("id") or "",
                is_default=bool(account.get("isDefault"))
            )
            for account in accounts
            if account.get("id")
        ]

    def set_subscription(self, subscription_id: str) -> bool:
        success, _ = self._run_azure_cli(
            ["account", "set", "--subscription", subscription_id],
            f"az account set {subscription_id}"
        )
        return success

    # ---------------- Key Vault ----------------

    def list_vaults(self) -> Optional[List[VaultEntry]]:
        """List the Key Vaults visible in the active subscription."""
        vaults = self._run_json(["keyvault", "list"], "az keyvault list")
        if vaults is None:
            return None
        return [
            VaultEntry(
                name=vault["name"],
                uri=(vault.get("properties") or {}).get("vaultUri")
            )
            for vault in vaults
            if vault.get("name")
        ]

    def list_secret_names(self, vault_name: str) -> Optional[List[str]]:
        """
        List the secret names in a vault.

        Args:
            vault_name: Key Vault name

        Returns:
            Secret names in the order az returns them, or None on failure
        """
        names = self._run_json(
            ["keyvault", "secret", "list", "--vault-name", vault_name, "--query", "[].name"],
            f"az keyvault secret list {vault_name}"
        )
        if names is None:
            return None
        return [str(name) for name in names]

    def get_secret_value(self, vault_name: str, secret_name: str) -> Optional[str]:
        """
        Retrieve a secret value. The value is never logged here.

        Args:
            vault_name: Key Vault name
            secret_name: Name of the secret in the vault

        Returns:
            Secret value or None if it could not be read
        """
        cmd = [
            "keyvault", "secret", "show",
            "--vault-name", vault_name,
            "--name", secret_name,
            "--query", "value",
            "-o", "tsv"
        ]
        success, output = self._run_azure_cli(cmd, f"az keyvault secret show {secret_name} ({vault_name})")
        if success:
            return output
        return None
