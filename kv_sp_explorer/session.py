"""
Who the explorer is acting as, and the login/logout decisions around it.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple, Union

from .models import ActiveSession, LoginKind, SessionIdentity

if TYPE_CHECKING:
    from .azure_cli import AzureCli

logger = logging.getLogger(__name__)

UNSET = "unset"


class SessionState:
    """The identity every audit line is attributed to."""

    def __init__(self, current: Optional[SessionIdentity] = None):
        self.current = current

    @property
    def label(self) -> str:
        return self.current.name if self.current else UNSET

    def set(self, identity: SessionIdentity) -> None:
        self.current = identity

    def clear(self) -> None:
        self.current = None

    def is_current(self, identity: SessionIdentity) -> bool:
        return self.current is not None and self.current.matches(identity)


class LoginOutcome(Enum):
    REUSED = "reused"
    LOGGED_IN = "logged_in"
    FAILED = "failed"


class LoginManager:
    """Log in through az, skipping the call when a matching session exists."""

    def __init__(self, cli: "AzureCli", state: SessionState):
        self.cli = cli
        self.state = state

    def find_reusable(self, target: SessionIdentity) -> Optional[Union[SessionIdentity, ActiveSession]]:
        """
        Look for a session that already authenticates as the target.

        Args:
            target: Identity about to be logged in

        Returns:
            The current identity or a matching active session, or None when a
            fresh login is needed (including when az cannot be queried).
        """
        if self.state.is_current(target):
            return self.state.current

        sessions = self.cli.list_active_sessions()
        if sessions is None:
            logger.warning("Could not list active sessions, attempting a fresh login")
            return None
        for session in sessions:
            if session.identity.matches(target):
                return session
        return None

    def login(self, target: SessionIdentity, password: str, tenant: Optional[str] = None,
              context: str = "") -> LoginOutcome:
        """
        Authenticate as the target unless an equivalent session is already active.

        Args:
            target: Identity to log in as
            password: Password or client secret; not retained
            tenant: Tenant ID or domain (required for service principals)
            context: Free text appended to the audit line, e.g. where the password came from

        Returns:
            LoginOutcome
        """
        suffix = f" ({context})" if context else ""
        reusable = self.find_reusable(target)
        if isinstance(reusable, SessionIdentity):
            logger.info(f"Login skipped, already acting as {target.name}{suffix}")
            return LoginOutcome.REUSED
        if isinstance(reusable, ActiveSession):
            if not reusable.subscription_id or self.cli.set_subscription(reusable.subscription_id):
                self.state.set(reusable.identity)
                logger.info(f"Login skipped, reusing existing session for {target.name}{suffix}")
                return LoginOutcome.REUSED
            logger.warning(f"Could not switch to existing session for {target.name}, logging in again")

        tenant_note = f" (tenant {tenant})" if tenant else ""
        logger.info(f"Attempting {target.kind.label} login for {target.name}{tenant_note}{suffix}")
        if target.kind is LoginKind.SERVICE_PRINCIPAL:
            success = self.cli.login_service_principal(target.name, password, tenant or "")
        else:
            success = self.cli.login_user(target.name, password, tenant)

        if not success:
            logger.error(f"Login FAILED or timed out for {target.name}")
            return LoginOutcome.FAILED
        self.state.set(target)
        logger.info(f"Login succeeded for {target.name}")
        return LoginOutcome.LOGGED_IN


# ---------------- Selective logout ----------------

@dataclass
class SessionGroup:
    """Active sessions sharing one identity"""
    name: str
    kind: LoginKind
    tenants: List[str] = field(default_factory=list)
    count: int = 0

    @property
    def identity(self) -> SessionIdentity:
        return SessionIdentity(self.name, self.kind)


def group_sessions(sessions: Sequence[ActiveSession]) -> List[SessionGroup]:
    """Deduplicate sessions by (name, kind), keeping first-seen order."""
    groups = {}
    for session in sessions:
        key = (session.name.casefold(), session.kind)
        group = groups.get(key)
        if group is None:
            group = groups[key] = SessionGroup(session.name, session.kind)
        group.count += 1
        if session.tenant and session.tenant not in group.tenants:
            group.tenants.append(session.tenant)
    return list(groups.values())


def parse_selection(text: str, total: int) -> Optional[List[int]]:
    """
    Parse a logout selection.

    Args:
        text: "all", space separated 1-based numbers, or blank/"q" to cancel
        total: Number of listed entries

    Returns:
        Sorted 0-based indices, or None when cancelled

    Raises:
        ValueError: On anything else, including out-of-range numbers
    """
    text = text.strip().lower()
    if not text or text == "q":
        return None
    if text == "all":
        return list(range(total))

    indices = set()
    for token in text.split():
        if not token.isdigit():
            raise ValueError(f"Not a number: {token}")
        number = int(token)
        if number < 1 or number > total:
            raise ValueError(f"Out of range: {number}")
        indices.add(number - 1)
    return sorted(indices)


def logout_selected(cli: "AzureCli", state: SessionState,
                    groups: Sequence[SessionGroup]) -> Tuple[int, int]:
    """
    Log out each selected identity, carrying on past failures.

    Returns:
        Tuple of (succeeded, failed)
    """
    succeeded = failed = 0
    for group in groups:
        if cli.logout(group.name):
            succeeded += 1
            logger.info(f"Logged out {group.name} ({group.kind.label})")
            if state.is_current(group.identity):
                state.clear()
        else:
            failed += 1
            logger.error(f"Logout failed for {group.name} ({group.kind.label})")
    return succeeded, failed
