"""
Tests for the reuse decision and selective logout.
"""
import pytest

from conftest import FakeAzureCli
from kv_sp_explorer.models import ActiveSession, LoginKind, SessionIdentity
from kv_sp_explorer.session import (LoginManager, LoginOutcome, SessionState, group_sessions,
                                    logout_selected, parse_selection)

SP = LoginKind.SERVICE_PRINCIPAL
USER = LoginKind.USER


class TestReuseDecision:

    def test_same_identity_as_current_skips_login(self):
        cli = FakeAzureCli()
        state = SessionState(SessionIdentity("sp-123", SP))

        outcome = LoginManager(cli, state).login(SessionIdentity("sp-123", SP), "pw", "contoso")

        assert outcome is LoginOutcome.REUSED
        assert cli.called("login_service_principal") == []
        assert cli.called("list_active_sessions") == []
        assert state.current == SessionIdentity("sp-123", SP)

    def test_matching_active_session_is_reused(self):
        cli = FakeAzureCli(sessions=[
            ActiveSession("alice@contoso.com", USER, "t1", "sub-a"),
            ActiveSession("SP-123", SP, "t1", "sub-b"),
        ])
        state = SessionState()

        outcome = LoginManager(cli, state).login(SessionIdentity("sp-123", SP), "pw", "contoso")

        assert outcome is LoginOutcome.REUSED
        assert cli.called("login_service_principal") == []
        assert cli.called("set_subscription") == [("set_subscription", "sub-b")]
        assert state.label == "SP-123"

    def test_same_name_with_other_kind_is_not_reused(self):
        cli = FakeAzureCli(sessions=[ActiveSession("sp-123", USER, "t1", "sub-a")])
        state = SessionState()

        outcome = LoginManager(cli, state).login(SessionIdentity("sp-123", SP), "pw", "contoso")

        assert outcome is LoginOutcome.LOGGED_IN
        assert cli.called("login_service_principal") == [("login_service_principal", "sp-123", "contoso")]

    def test_failed_session_listing_falls_back_to_fresh_login(self):
        cli = FakeAzureCli()
        cli.fail_session_listing = True
        state = SessionState()

        outcome = LoginManager(cli, state).login(SessionIdentity("alice@contoso.com", USER), "pw")

        assert outcome is LoginOutcome.LOGGED_IN
        assert cli.called("login_user") == [("login_user", "alice@contoso.com", None)]
        assert state.current == SessionIdentity("alice@contoso.com", USER)

    def test_failed_login_leaves_identity_unchanged(self):
        cli = FakeAzureCli()
        cli.login_result = False
        state = SessionState(SessionIdentity("sp-123", SP))

        outcome = LoginManager(cli, state).login(SessionIdentity("sp-999", SP), "pw", "contoso")

        assert outcome is LoginOutcome.FAILED
        assert state.label == "sp-123"

    def test_login_is_recorded_without_password(self, audit, state, config):
        cli = FakeAzureCli()

        LoginManager(cli, state).login(SessionIdentity("sp-123", SP), "pa55word", "contoso")

        text = config.log_file.read_text(encoding="utf-8")
        assert "Attempting service principal login for sp-123 (tenant contoso)" in text
        assert "user:sp-123 - Login succeeded for sp-123" in text
        assert "pa55word" not in text


class TestGroupSessions:

    def test_deduplicates_by_name_and_kind(self):
        sessions = [
            ActiveSession("sp-123", SP, "t1", "sub-1"),
            ActiveSession("alice@contoso.com", USER, "t1", "sub-1"),
            ActiveSession("sp-123", SP, "t2", "sub-2"),
            ActiveSession("sp-123", USER, "t1", "sub-3"),
        ]

        groups = group_sessions(sessions)

        assert [(g.name, g.kind, g.count, g.tenants) for g in groups] == [
            ("sp-123", SP, 2, ["t1", "t2"]),
            ("alice@contoso.com", USER, 1, ["t1"]),
            ("sp-123", USER, 1, ["t1"]),
        ]

    def test_empty(self):
        assert group_sessions([]) == []


class TestParseSelection:

    @pytest.mark.parametrize("text", ["", "  ", "q", "Q"])
    def test_cancel(self, text):
        assert parse_selection(text, 3) is None

    def test_all(self):
        assert parse_selection("all", 3) == [0, 1, 2]

    def test_numbers(self):
        assert parse_selection("3 1 3", 3) == [0, 2]

    @pytest.mark.parametrize("text", ["0", "4", "1 x", "-1", "1,2"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_selection(text, 3)


class TestSelectiveLogout:

    def test_all_logs_out_both_kinds_and_resets_identity(self):
        cli = FakeAzureCli()
        state = SessionState(SessionIdentity("ops@contoso.com", USER))
        groups = group_sessions([
            ActiveSession("ops@contoso.com", SP, "t1"),
            ActiveSession("ops@contoso.com", USER, "t1"),
        ])

        selected = [groups[i] for i in parse_selection("all", len(groups))]
        succeeded, failed = logout_selected(cli, state, selected)

        assert (succeeded, failed) == (2, 0)
        assert cli.called("logout") == [("logout", "ops@contoso.com"), ("logout", "ops@contoso.com")]
        assert state.label == "unset"

    def test_other_identity_keeps_current(self):
        cli = FakeAzureCli()
        state = SessionState(SessionIdentity("sp-123", SP))
        groups = group_sessions([ActiveSession("alice@contoso.com", USER, "t1")])

        logout_selected(cli, state, groups)

        assert state.label == "sp-123"

    def test_failure_does_not_stop_the_batch(self, audit, config):
        cli = FakeAzureCli()
        cli.logout_failures = {"bad@contoso.com"}
        state = SessionState()
        groups = group_sessions([
            ActiveSession("bad@contoso.com", USER, "t1"),
            ActiveSession("sp-123", SP, "t1"),
        ])

        succeeded, failed = logout_selected(cli, state, groups)

        assert (succeeded, failed) == (1, 1)
        assert len(cli.called("logout")) == 2
        text = config.log_file.read_text(encoding="utf-8")
        assert "ERROR - Logout failed for bad@contoso.com (user)" in text
        assert "Logged out sp-123 (service principal)" in text
