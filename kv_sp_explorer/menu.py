#!/usr/bin/env python3
"""
Azure Key Vault explorer.
Login as a service principal, list vaults, browse secret names, fetch values on
demand, and optionally try a fetched value as another principal's password.
Actions go to the operational log (no secret values by default); usernames
tied to exposed values go to the exposure log.
"""
import getpass
import os
import sys
from typing import Callable, Optional

from .audit_log import AuditLog, AuditWriteError
from .azure_cli import AzureCli
from .browser import VaultBrowser, parse_index
from .config import ExplorerConfig
from .models import LoginKind, SessionIdentity
from .session import (LoginManager, LoginOutcome, SessionState, group_sessions,
                      logout_selected, parse_selection)

# Characters of `az version` output kept in the startup record
VERSION_EXCERPT = 220


class Explorer:
    """Top-level menu and the state shared by every action."""

    def __init__(self, config: ExplorerConfig, cli: Optional[AzureCli] = None,
                 prompt: Optional[Callable[[str], str]] = None,
                 secret_prompt: Optional[Callable[[str], str]] = None,
                 echo: Optional[Callable[..., None]] = None):
        prompt = prompt or input
        echo = echo or print
        self.config = config
        self.state = SessionState()
        self.audit = AuditLog(config.log_file, config.exposure_log_file, self.state)
        self.cli = cli or AzureCli(timeout=config.command_timeout)
        self.logins = LoginManager(self.cli, self.state)
        self.browser = VaultBrowser(self.cli, self.audit, self.logins, config, prompt=prompt, echo=echo)
        self.prompt = prompt
        self.secret_prompt = secret_prompt or getpass.getpass
        self.echo = echo

    def _ask(self, text: str) -> str:
        return self.prompt(text).strip()

    def sp_login(self) -> bool:
        """Interactive service principal login."""
        self.echo("\nService Principal login (interactive). Enter values below.")
        app_id = self._ask("Service Principal AppID (username): ")
        password = self.secret_prompt("Service Principal Password (password): ")
        default_tenant = self.config.tenant_id
        hint = f" [{default_tenant}]" if default_tenant else ""
        tenant = self._ask(f"Tenant ID (or domain){hint}: ") or default_tenant
        try:
            if not app_id or not tenant:
                self.audit.record_error("SP login needs an AppID and a tenant")
                return False
            outcome = self.logins.login(SessionIdentity(app_id, LoginKind.SERVICE_PRINCIPAL), password, tenant)
        finally:
            password = None

        if outcome is LoginOutcome.FAILED:
            self.echo(f"SP login failed; check {self.config.log_file}")
            return False
        if outcome is LoginOutcome.REUSED:
            self.echo(f"Already logged in as SP: {app_id}")
        else:
            self.echo(f"Logged in as SP: {app_id}")
        self._show_account()
        return True

    def _show_account(self) -> None:
        identity = self.cli.current_session()
        if identity is None:
            return
        self.echo(f"Current account: {identity.name} ({identity.kind.label})")

    def choose_subscription(self) -> bool:
        """Switch the default subscription."""
        subscriptions = self.cli.list_subscriptions()
        if subscriptions is None:
            self.audit.record_error("Unable to list subscriptions")
            self.echo(f"Could not list subscriptions; is a session active? See {self.config.log_file}")
            return False
        if len(subscriptions) <= 1:
            self.echo("One or zero subscriptions visible; nothing to change.")
            return True

        self.echo("Available subscriptions:")
        for i, subscription in enumerate(subscriptions, 1):
            marker = " *" if subscription.is_default else ""
            self.echo(f"{i:2d}) {subscription.name} | {subscription.id}{marker}")
        while True:
            choice = self._ask("Enter subscription number to set (or press Enter to keep current): ")
            if not choice:
                self.echo("Keeping current subscription.")
                return True
            index = parse_index(choice, len(subscriptions))
            if index is not None:
                break
            self.echo("Invalid selection.")

        subscription = subscriptions[index]
        if not self.cli.set_subscription(subscription.id):
            self.audit.record_error("Failed to set subscription")
            return False
        self.audit.record(f"Active subscription set to {subscription.id}")
        return True

    def show_logs(self, lines: int = 200) -> None:
        for exposure, path in ((False, self.config.log_file), (True, self.config.exposure_log_file)):
            self.echo(f"----- {path} -----")
            for line in self.audit.tail(exposure=exposure, lines=lines):
                self.echo(line)
            self.echo("")

    def logout(self) -> None:
        """Pick which active sessions to log out."""
        sessions = self.cli.list_active_sessions()
        if sessions is None:
            self.audit.record_error("Unable to list active sessions")
            self.echo(f"Could not list sessions; see {self.config.log_file}")
            return
        groups = group_sessions(sessions)
        if not groups:
            self.echo("No active session.")
            return

        self.echo("Active sessions:")
        for i, group in enumerate(groups, 1):
            tenants = ", ".join(group.tenants) or "unknown tenant"
            self.echo(f"{i:2d}) {group.name} [{group.kind.label}] {tenants} ({group.count} entries)")

        while True:
            text = self._ask("Numbers to log out (space separated), 'all', or blank to cancel: ")
            try:
                selection = parse_selection(text, len(groups))
            except ValueError as e:
                self.echo(f"Invalid selection: {e}")
                continue
            break
        if selection is None:
            self.echo("Logout cancelled.")
            return

        succeeded, failed = logout_selected(self.cli, self.state, [groups[i] for i in selection])
        self.echo(f"Logged out {succeeded} of {len(selection)}, {failed} failed.")

    def main_menu(self) -> None:
        while True:
            self.echo(f"\nMain Menu (acting as: {self.state.label}):")
            self.echo("  1) SP Login (service-principal)")
            self.echo("  2) Choose subscription")
            self.echo("  3) List vaults -> browse secrets -> fetch/act")
            self.echo("  4) Show logs (last 200 lines)")
            self.echo("  5) Logout (choose sessions)")
            self.echo("  6) Exit")
            choice = self._ask("Choose 1-6: ")
            if choice == "1":
                self.sp_login()
            elif choice == "2":
                self.choose_subscription()
            elif choice == "3":
                self.browser.run()
            elif choice == "4":
                self.show_logs()
            elif choice == "5":
                self.logout()
            elif choice == "6":
                self.audit.record("Exiting.")
                break
            else:
                self.echo("Invalid option")

    def record_startup(self) -> None:
        try:
            user = getpass.getuser()
        except (OSError, KeyError):
            user = "unknown"
        self.audit.record(f"Script started by {user}")
        version = self.cli.version()
        self.audit.record(f"az version: {version[:VERSION_EXCERPT] if version else 'unknown'}")
        proxies = " ".join(f"{name}={os.getenv(name, '')}" for name in ("HTTP_PROXY", "HTTPS_PROXY", "NO_PROXY"))
        self.audit.record(f"Proxy env: {proxies}")
        for warning in self.config.warnings:
            self.audit.record(f"Config warning: {warning}")

    def close(self) -> None:
        self.audit.close()


def main() -> None:
    """Start the interactive explorer."""
    config = ExplorerConfig.from_env()

    try:
        explorer = Explorer(config)
    except AuditWriteError as e:
        print(f"Cannot open audit logs: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        if not explorer.cli.is_available():
            explorer.audit.record_error("az CLI not found. Install azure-cli and retry.")
            sys.exit(1)
        explorer.record_startup()
        explorer.main_menu()
        explorer.audit.record("Script finished")
    except AuditWriteError as e:
        print(f"Audit log write failed, stopping: {e}", file=sys.stderr)
        sys.exit(2)
    except (KeyboardInterrupt, EOFError):
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    finally:
        explorer.close()


if __name__ == "__main__":
    main()
