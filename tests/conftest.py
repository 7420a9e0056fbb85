"""
Shared fixtures: audit logs in a temp dir and a scripted stand-in for the az CLI.
"""
from typing import Dict, List, Optional, Tuple

import pytest

from kv_sp_explorer.audit_log import AuditLog
from kv_sp_explorer.config import ExplorerConfig
from kv_sp_explorer.models import ActiveSession, SessionIdentity, Subscription, VaultEntry
from kv_sp_explorer.session import SessionState


class FakeAzureCli:
    """In-memory replacement for AzureCli that records the calls it gets."""

    def __init__(self, vaults: Optional[Dict[str, List[str]]] = None,
                 values: Optional[Dict[Tuple[str, str], str]] = None,
                 sessions: Optional[List[ActiveSession]] = None):
        self.vaults = vaults if vaults is not None else {}
        self.values = values or {}
        self.sessions = sessions if sessions is not None else []
        self.subscriptions: List[Subscription] = []
        self.login_result = True
        self.logout_failures: set = set()
        self.unlistable_vaults: set = set()
        self.fail_session_listing = False
        self.calls: List[tuple] = []

    def is_available(self) -> bool:
        return True

    def version(self) -> Optional[str]:
        return "azure-cli 2.61.0"

    def list_vaults(self) -> Optional[List[VaultEntry]]:
        self.calls.append(("list_vaults",))
        return [VaultEntry(name, f"https://{name}.vault.azure.net/") for name in self.vaults]

    def list_secret_names(self, vault_name: str) -> Optional[List[str]]:
        self.calls.append(("list_secret_names", vault_name))
        if vault_name in self.unlistable_vaults:
            return None
        return list(self.vaults.get(vault_name, []))

    def get_secret_value(self, vault_name: str, secret_name: str) -> Optional[str]:
        self.calls.append(("get_secret_value", vault_name, secret_name))
        return self.values.get((vault_name, secret_name))

    def login_service_principal(self, app_id: str, password: str, tenant: str) -> bool:
        self.calls.append(("login_service_principal", app_id, tenant))
        return self.login_result

    def login_user(self, username: str, password: str, tenant: Optional[str] = None) -> bool:
        self.calls.append(("login_user", username, tenant))
        return self.login_result

    def current_session(self) -> Optional[SessionIdentity]:
        return self.sessions[0].identity if self.sessions else None

    def list_active_sessions(self) -> Optional[List[ActiveSession]]:
        self.calls.append(("list_active_sessions",))
        if self.fail_session_listing:
            return None
        return list(self.sessions)

    def logout(self, username: Optional[str] = None) -> bool:
        self.calls.append(("logout", username))
        return username not in self.logout_failures

    def list_subscriptions(self) -> Optional[List[Subscription]]:
        return list(self.subscriptions)

    def set_subscription(self, subscription_id: str) -> bool:
        self.calls.append(("set_subscription", subscription_id))
        return True

    def called(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]


class ScriptedPrompt:
    """Answers prompts from a fixed script; running out is a test failure."""

    def __init__(self, *answers: str):
        self.answers = list(answers)
        self.asked: List[str] = []

    def __call__(self, text: str) -> str:
        self.asked.append(text)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {text!r}")
        return self.answers.pop(0)


class Echo:
    """Collects everything the UI prints."""

    def __init__(self):
        self.lines: List[str] = []

    def __call__(self, *args, **kwargs) -> None:
        self.lines.append(" ".join(str(a) for a in args))

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


@pytest.fixture
def config(tmp_path):
    return ExplorerConfig(
        tenant_id="contoso.onmicrosoft.com",
        log_file=tmp_path / "script.log",
        exposure_log_file=tmp_path / "readPass.log",
    )


@pytest.fixture
def state():
    return SessionState()


@pytest.fixture
def audit(config, state):
    audit_log = AuditLog(config.log_file, config.exposure_log_file, state, mirror_errors=False)
    yield audit_log
    audit_log.close()


@pytest.fixture
def echo():
    return Echo()
