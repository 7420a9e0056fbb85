"""
Interactive Key Vault browser.

Navigation is nested loops: vault list -> secret list -> secret detail, plus a
cross-vault search that opens hits in the detail view of their vault's list
filtered by the search text. Inner loops return a Nav signal telling the
enclosing loop where control resumes.
"""
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from .audit_log import REASON_DISPLAYED, REASON_LOGIN, AuditLog
from .azure_cli import AzureCli
from .config import ExplorerConfig
from .models import LoginKind, SearchHit, SessionIdentity, VaultEntry
from .session import LoginManager, LoginOutcome


class Nav(Enum):
    """Where control resumes after an inner loop returns"""
    NONE = "none"
    RETURN_TO_VAULTS = "vaults"
    RETURN_TO_MAIN = "main"


def filter_names(names: Sequence[str], query: str) -> List[str]:
    """Case-insensitive substring filter that keeps the original order."""
    if not query:
        return list(names)
    needle = query.casefold()
    return [name for name in names if needle in name.casefold()]


def parse_index(choice: str, total: int) -> Optional[int]:
    """Turn a 1-based menu number into an index, None if invalid."""
    if not choice.isdigit():
        return None
    index = int(choice) - 1
    if index < 0 or index >= total:
        return None
    return index


class DetailCursor:
    """Position within a list of secret names, clamped at both ends."""

    def __init__(self, names: Sequence[str], index: int = 0):
        if not names:
            raise ValueError("Cannot browse an empty secret list")
        self.names = list(names)
        self.index = min(max(index, 0), len(self.names) - 1)

    @property
    def current(self) -> str:
        return self.names[self.index]

    def next(self) -> bool:
        if self.index >= len(self.names) - 1:
            return False
        self.index += 1
        return True

    def previous(self) -> bool:
        if self.index <= 0:
            return False
        self.index -= 1
        return True


class VaultBrowser:
    """Menu-driven walk through vaults and their secrets."""

    def __init__(self, cli: AzureCli, audit: AuditLog, logins: LoginManager, config: ExplorerConfig,
                 prompt: Callable[[str], str] = input,
                 echo: Callable[..., None] = print):
        self.cli = cli
        self.audit = audit
        self.logins = logins
        self.config = config
        self.prompt = prompt
        self.echo = echo
        self._names_cache: Dict[str, List[str]] = {}

    def _ask(self, text: str) -> str:
        return self.prompt(text).strip()

    def _secret_names(self, vault: str) -> Optional[List[str]]:
        """Secret names of a vault, fetched once per browsing session."""
        if vault not in self._names_cache:
            names = self.cli.list_secret_names(vault)
            if names is None:
                return None
            self._names_cache[vault] = names
        return self._names_cache[vault]

    # ---------------- Vault list ----------------

    def run(self) -> Nav:
        """Browse vaults until the operator quits or asks for the main menu."""
        self._names_cache = {}
        vaults = self.cli.list_vaults()
        if vaults is None:
            self.audit.record_error("Failed to list vaults")
            self.echo(f"Could not list Key Vaults; see {self.config.log_file}")
            return Nav.NONE
        if not vaults:
            self.echo("No Key Vaults found or insufficient permissions.")
            return Nav.NONE

        while True:
            self._show_vaults(vaults)
            choice = self._ask("Choose vault number, s) search all vaults, q) back: ")
            if choice in ("q", "h"):
                return Nav.NONE
            if choice == "s":
                nav = self.search(vaults)
            else:
                index = parse_index(choice, len(vaults))
                if index is None:
                    self.echo("Invalid selection.")
                    continue
                vault = vaults[index].name
                self.audit.record(f"Selected vault: {vault}")
                nav = self.browse_vault(vault)
            if nav is Nav.RETURN_TO_MAIN:
                return nav

    def _show_vaults(self, vaults: Sequence[VaultEntry]) -> None:
        self.echo("\nKey Vaults:")
        for i, vault in enumerate(vaults, 1):
            self.echo(f"{i:2d}) {vault.name} ({vault.uri or ''})")

    # ---------------- Secret list ----------------

    def browse_vault(self, vault: str, query: str = "", start_index: Optional[int] = None) -> Nav:
        """
        Secret list of one vault with an optional substring filter.

        Args:
            vault: Vault name
            query: Initial filter
            start_index: Open this position of the filtered view in the detail
                view before the list is shown
        """
        names = self._secret_names(vault)
        if names is None:
            self.audit.record_error(f"Failed to list secret names for {vault}")
            self.echo(f"Could not list secrets; see {self.config.log_file}")
            return Nav.NONE
        if not names:
            self.echo("No secrets found or insufficient permissions.")
            return Nav.NONE

        while True:
            view = filter_names(names, query)
            if start_index is not None:
                index, start_index = start_index, None
            else:
                self._show_secret_list(vault, view, query)
                choice = self._ask("Your choice: ")
                if choice == "b":
                    return Nav.RETURN_TO_VAULTS
                if choice == "h":
                    return Nav.RETURN_TO_MAIN
                if choice == "f":
                    query = self._ask("Filter by substring (blank clears): ")
                    continue
                if choice == "c":
                    query = ""
                    continue
                if choice == "a":
                    self.fetch_all(vault, view)
                    continue

                index = parse_index(choice, len(view))
                if index is None:
                    self.echo("Invalid selection.")
                    continue
            nav = self.secret_detail(vault, view, index)
            if nav is not Nav.NONE:
                return nav

    def _show_secret_list(self, vault: str, view: Sequence[str], query: str) -> None:
        heading = f"\nSecrets in {vault}"
        if query:
            heading += f" matching '{query}'"
        self.echo(heading + ":")
        if not view:
            self.echo("  (no secrets match)")
        for i, name in enumerate(view, 1):
            self.echo(f"{i:2d}) {name}")
        self.echo("  f) filter  c) clear filter  a) fetch ALL values shown  b) back to vaults  h) main menu")

    # ---------------- Secret detail ----------------

    def secret_detail(self, vault: str, names: Sequence[str], index: int) -> Nav:
        """
        Detail view of one secret with next/previous over the given list.

        Returns:
            Nav.NONE to go back to the list it was opened from, or the signal
            for an outer level.
        """
        cursor = DetailCursor(names, index)
        while True:
            name = cursor.current
            self._show_detail(vault, cursor)
            choice = self._ask("Choose: ")
            if choice == "f":
                self.fetch_and_show(vault, name)
            elif choice == "t":
                self.try_login_with_secret(vault, name)
            elif choice == "n":
                if not cursor.next():
                    self.echo("Already at the last secret.")
            elif choice == "p":
                if not cursor.previous():
                    self.echo("Already at the first secret.")
            elif choice == "b":
                return Nav.NONE
            elif choice == "v":
                return Nav.RETURN_TO_VAULTS
            elif choice == "h":
                return Nav.RETURN_TO_MAIN
            else:
                self.echo("Invalid option.")

    def _show_detail(self, vault: str, cursor: DetailCursor) -> None:
        self.echo(f"\nSecret: {cursor.current} in vault: {vault} ({cursor.index + 1}/{len(cursor.names)})")
        self.echo("  f) fetch and show VALUE")
        self.echo("  t) fetch value and attempt az login as another user/SP")
        self.echo("  n) next  p) previous  b) back to list  v) back to vaults  h) main menu")

    # ---------------- Search ----------------

    def search(self, vaults: Sequence[VaultEntry]) -> Nav:
        """Search secret names across every vault."""
        while True:
            query = self._ask("Search secret names in all vaults (blank to go back): ")
            if not query:
                return Nav.RETURN_TO_VAULTS
            self.audit.record(f"Searched all vaults for '{query}'")
            hits = self._search_hits(vaults, query)
            nav = self._search_results(query, hits)
            if nav is not Nav.NONE:
                return nav

    def _search_hits(self, vaults: Sequence[VaultEntry], query: str) -> List[SearchHit]:
        hits = []
        failed = 0
        for vault in vaults:
            names = self._secret_names(vault.name)
            if names is None:
                failed += 1
                continue
            hits.extend(SearchHit(vault.name, name) for name in filter_names(names, query))
        if failed:
            self.audit.record_error(f"Search skipped {failed} vault(s) that could not be listed")
        return hits

    def _search_results(self, query: str, hits: Sequence[SearchHit]) -> Nav:
        """Results of one search. Nav.NONE means start a new search."""
        while True:
            self.echo(f"\nSecrets matching '{query}':")
            if not hits:
                self.echo("  (no matches)")
            for i, hit in enumerate(hits, 1):
                self.echo(f"{i:2d}) {hit.vault} / {hit.secret}")
            self.echo("  s) new search  b) back to vaults  h) main menu")
            choice = self._ask("Your choice: ")
            if choice == "s":
                return Nav.NONE
            if choice == "b":
                return Nav.RETURN_TO_VAULTS
            if choice == "h":
                return Nav.RETURN_TO_MAIN

            index = parse_index(choice, len(hits))
            if index is None:
                self.echo("Invalid selection.")
                continue
            hit = hits[index]
            view = filter_names(self._names_cache[hit.vault], query)
            nav = self.browse_vault(hit.vault, query=query, start_index=view.index(hit.secret))
            if nav is not Nav.NONE:
                return nav

    # ---------------- Secret values ----------------

    def fetch_and_show(self, vault: str, name: str) -> bool:
        """
        Show a secret value and optionally tag a username in the exposure log.

        Returns:
            True if the value was fetched
        """
        value = self.cli.get_secret_value(vault, name)
        if value is None:
            self.audit.record_error(f"Failed to fetch value for {name} in {vault}")
            self.echo(f"Could not fetch {name}; see {self.config.log_file}")
            return False
        try:
            self.echo(f"VALUE ({name}): {value}")
            self.audit.record(f"Fetched secret {name} from {vault} (value displayed on-screen)")
            if self.config.log_secret_values:
                self.audit.record(f"SECRET_VALUE: {name} = {value}")
            username = self._ask(
                f"Mark an account username in {self.config.exposure_log_file} for follow-up? "
                "(enter username or leave blank): "
            )
            if username:
                self.audit.record_exposure(username, REASON_DISPLAYED, name, vault)
                self.audit.record(f"Marked {username} in {self.config.exposure_log_file}")
            return True
        finally:
            value = None

    def fetch_all(self, vault: str, names: Sequence[str]) -> None:
        """Fetch and show every value in the list after confirmation."""
        if not names:
            self.echo("Nothing to fetch.")
            return
        confirm = self._ask(f"Fetch ALL {len(names)} values and display on screen? [y/N]: ")
        if confirm.lower() != "y":
            self.echo("Aborted fetch all.")
            return

        self.audit.record(f"Fetching all {len(names)} secret values from {vault}")
        fetched = 0
        for name in names:
            if self.fetch_and_show(vault, name):
                fetched += 1
            else:
                self.echo(f"Failed: {name}")
        failed = len(names) - fetched
        self.audit.record(f"Fetch all in {vault}: {fetched} of {len(names)} fetched, {failed} failed")
        self.echo(f"Fetched {fetched} of {len(names)}, {failed} failed.")

    def try_login_with_secret(self, vault: str, name: str) -> LoginOutcome:
        """Use a secret value as the password of another principal."""
        value = self.cli.get_secret_value(vault, name)
        if value is None:
            self.audit.record_error(f"Failed to fetch value for {name} in {vault}")
            self.echo(f"Could not fetch {name}; see {self.config.log_file}")
            return LoginOutcome.FAILED
        try:
            self.echo("Fetched secret value (not logged).")
            if self.config.log_secret_values:
                self.audit.record(f"SECRET_VALUE: {name} = {value}")
            username = self._ask("Enter username (UPN) or SP appId to attempt az login as: ")
            if not username:
                self.audit.record_error("No username provided. Aborting attempt.")
                return LoginOutcome.FAILED

            kind_choice = self._ask("Log in as u) user or s) service principal [u]: ").lower()
            kind = LoginKind.SERVICE_PRINCIPAL if kind_choice == "s" else LoginKind.USER
            tenant = self._ask_tenant(required=kind is LoginKind.SERVICE_PRINCIPAL)
            if tenant is None:
                self.audit.record_error("No tenant provided for service principal login. Aborting attempt.")
                return LoginOutcome.FAILED

            self.echo(f"Running az login for {username} ...")
            outcome = self.logins.login(
                SessionIdentity(username, kind), value, tenant,
                context=f"from secret:{name} vault:{vault}"
            )
            if outcome is LoginOutcome.LOGGED_IN:
                self.audit.record_exposure(username, REASON_LOGIN, name, vault)
                self.audit.record(f"Wrote {username} record to {self.config.exposure_log_file}")
                self.echo(f"Login succeeded for {username}")
            elif outcome is LoginOutcome.REUSED:
                self.echo(f"A session for {username} is already active; login skipped.")
            else:
                self.echo(f"Login failed for {username}; see {self.config.log_file}")
            return outcome
        finally:
            value = None

    def _ask_tenant(self, required: bool) -> Optional[str]:
        default = self.config.tenant_id
        hint = f" [{default}]" if default else ""
        tenant = self._ask(f"Tenant ID (or domain){hint}: ") or default
        if tenant:
            return tenant
        return None if required else ""
