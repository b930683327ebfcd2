"""
Tests for the login orchestrator.

Tests:
- Login outcomes (authenticated, factor required, rejections)
- Second factor completion and partial session handling
- Deferred action token redemption
- Policy hook ordering and failure handling
- Logout, status, direct token submission and password reset
"""

import pyotp
import pytest

from loginflow.auth.hooks import HookKind, PolicyHookRegistry
from loginflow.auth.login import LoginOrchestrator
from loginflow.auth.session import (
    ANONYMOUS, AuthenticatedSession, PartialSession, SessionState,
)
from loginflow.config import DEFAULT_DEFERRED_KINDS, DEFAULT_TOKEN_TTLS
from loginflow.errors import RegistryFrozenError
from loginflow.factors import FactorKind, RecoveryCodeProvider, SecondFactorRegistry
from loginflow.integration import EventType
from loginflow.outcomes import (
    ActionCompleted, Authenticated, FactorRequired, LoggedOut, RejectReason,
    Rejected, TokenStashed,
)
from loginflow.tokens import ActionKind, ActionTokenOrchestrator, InMemoryTokenStore

from tests.conftest import FakeClock, NEW_PASSWORD, PASSWORD, grant_enrollment, make_user

EMAIL = "alice@example.com"


def enroll_totp(app, principal_id, clock):
    grant_enrollment(app, principal_id)
    secret, _ = app.totp.begin_enrollment(principal_id, EMAIL)
    code = pyotp.TOTP(secret).generate_otp(int(clock()) // 30)
    assert app.totp.confirm_enrollment(principal_id, "phone", code)
    clock.advance(30)
    return secret


def totp_code(secret, clock):
    return pyotp.TOTP(secret).generate_otp(int(clock()) // 30)


def build_login(users, hooks=None, factors=None, deferred=DEFAULT_DEFERRED_KINDS,
                clock=None, handlers=None):
    """Orchestrator over bare registries, for hook and token edge cases."""
    clock = clock or FakeClock()
    tokens = ActionTokenOrchestrator(InMemoryTokenStore(), b"k" * 32,
                                     DEFAULT_TOKEN_TTLS, clock=clock)
    for kind in ActionKind:
        tokens.register_handler(
            kind, (handlers or {}).get(kind,
                                       lambda pid, payload, kind=kind: users.apply_action(pid, kind, payload)))
    login = LoginOrchestrator(users, users, tokens,
                              factors if factors is not None else SecondFactorRegistry(),
                              hooks if hooks is not None else PolicyHookRegistry(),
                              deferred_token_kinds=deferred, clock=clock)
    return login, tokens


class TestLogin:
    """Tests for password login."""

    def test_no_factors_authenticates(self, app, alice, state):
        outcome = app.login.login(EMAIL, PASSWORD, state)

        assert outcome == Authenticated(alice)
        assert outcome.code == "LoginSuccessful"
        assert state.login == AuthenticatedSession(alice)
        assert state.principal_id == alice
        assert len(app.audit.events(EventType.LOGIN_SUCCESS)) == 1

    @pytest.mark.parametrize("email,password", [
        ("", PASSWORD),
        ("not-an-email", PASSWORD),
        (EMAIL, ""),
        (None, None),
    ])
    def test_invalid_input_runs_no_hooks(self, app, alice, state, email, password):
        outcome = app.login.login(email, password, state)

        assert outcome == Rejected(RejectReason.INVALID_INPUT)
        assert state.login is ANONYMOUS
        assert len(app.audit) == 0

    def test_already_authenticated(self, app, alice, state):
        app.login.login(EMAIL, PASSWORD, state)
        outcome = app.login.login(EMAIL, PASSWORD, state)
        assert outcome.reason is RejectReason.ALREADY_AUTHENTICATED

    def test_wrong_password(self, app, alice, state):
        outcome = app.login.login(EMAIL, "WrongPass123!", state)

        assert outcome == Rejected(RejectReason.INVALID_CREDENTIALS)
        assert outcome.code == "InvalidCredentials"
        assert state.login is ANONYMOUS
        failures = app.audit.events(EventType.LOGIN_FAILED)
        assert len(failures) == 1
        assert failures[0].user_hash != "unknown"

    def test_unknown_email(self, app, state):
        outcome = app.login.login("nobody@example.com", PASSWORD, state)
        assert outcome == Rejected(RejectReason.INVALID_CREDENTIALS)
        assert app.audit.events(EventType.LOGIN_FAILED)[0].user_hash == "unknown"

    def test_inactive_account_denied(self, app, state):
        make_user(app, activate=False)
        outcome = app.login.login(EMAIL, PASSWORD, state)

        assert outcome == Rejected(RejectReason.POLICY_DENIED, "AccountNotActivated")
        assert outcome.code == "AccountNotActivated"
        assert state.login is ANONYMOUS

    def test_lockout_after_repeated_failures(self, app, alice, state):
        for _ in range(app.config.max_login_attempts):
            app.login.login(EMAIL, "WrongPass123!", state)

        outcome = app.login.login(EMAIL, PASSWORD, state)
        assert outcome == Rejected(RejectReason.POLICY_DENIED, "AccountLocked")
        assert app.users.lookup(alice).locked

    def test_unlock_token_lifts_lockout(self, app, alice, state):
        for _ in range(app.config.max_login_attempts):
            app.login.login(EMAIL, "WrongPass123!", state)

        token = app.tokens.issue(alice, ActionKind.UNLOCK)
        assert app.login.submit_action_token(token, state) == TokenStashed()

        assert app.login.login(EMAIL, PASSWORD, state) == Authenticated(alice)
        assert not app.users.lookup(alice).locked

    def test_registries_frozen(self, app):
        with pytest.raises(RegistryFrozenError):
            app.hooks.register(HookKind.PRE_LOGIN, lambda p: (True, None))
        with pytest.raises(RegistryFrozenError):
            app.factors.register(RecoveryCodeProvider())


class TestSecondFactor:
    """Tests for partial logins and their completion."""

    def test_factor_required(self, app, alice, state, clock):
        enroll_totp(app, alice, clock)
        outcome = app.login.login(EMAIL, PASSWORD, state)

        assert outcome == FactorRequired(alice, frozenset({FactorKind.TOTP}))
        assert outcome.to_dict()['factors'] == ['totp']
        assert isinstance(state.login, PartialSession)
        assert not state.is_authenticated
        assert state.principal_id is None

    def test_repeated_login_stays_partial(self, app, alice, state, clock):
        enroll_totp(app, alice, clock)
        for _ in range(3):
            assert isinstance(app.login.login(EMAIL, PASSWORD, state), FactorRequired)
            assert isinstance(state.login, PartialSession)
            assert not state.is_authenticated

    def test_totp_completes_login(self, app, alice, state, clock):
        secret = enroll_totp(app, alice, clock)
        app.login.login(EMAIL, PASSWORD, state)

        outcome = app.totp.authenticate(state, totp_code(secret, clock))

        assert outcome == Authenticated(alice)
        assert state.login == AuthenticatedSession(alice)
        assert len(app.audit.events(EventType.SECOND_FACTOR_VERIFIED)) == 1
        assert len(app.audit.events(EventType.LOGIN_SUCCESS)) == 1

    def test_wrong_code_keeps_partial(self, app, alice, state, clock):
        secret = enroll_totp(app, alice, clock)
        app.login.login(EMAIL, PASSWORD, state)
        wrong = pyotp.TOTP(secret).generate_otp(int(clock()) // 30 + 10)

        outcome = app.totp.authenticate(state, wrong)

        assert outcome == Rejected(RejectReason.SECOND_FACTOR_FAILED)
        assert isinstance(state.login, PartialSession)
        assert len(app.audit.events(EventType.SECOND_FACTOR_FAILED)) == 1

    def test_recovery_code_completes_login(self, app, alice, state):
        grant_enrollment(app, alice)
        codes = app.recovery.generate(alice)
        assert app.login.login(EMAIL, PASSWORD, state) == FactorRequired(
            alice, frozenset({FactorKind.RECOVERY}))
        assert app.recovery.authenticate(state, codes[0]) == Authenticated(alice)

    def test_wrong_principal_never_promotes(self, app, alice, state, clock):
        enroll_totp(app, alice, clock)
        app.login.login(EMAIL, PASSWORD, state)
        before = state.login

        outcome = app.login.complete_second_factor(state, "someone-else", FactorKind.TOTP)

        assert outcome == Rejected(RejectReason.INVALID_SESSION)
        assert state.login == before

    def test_anonymous_session_rejected(self, app, alice, state):
        outcome = app.login.complete_second_factor(state, alice, FactorKind.TOTP)
        assert outcome == Rejected(RejectReason.INVALID_SESSION)
        assert state.login is ANONYMOUS

    def test_authenticated_session_rejected(self, app, alice, state):
        app.login.login(EMAIL, PASSWORD, state)
        outcome = app.login.complete_second_factor(state, alice, FactorKind.TOTP)
        assert outcome == Rejected(RejectReason.INVALID_SESSION)

    def test_expired_partial_session(self, app, alice, state, clock):
        secret = enroll_totp(app, alice, clock)
        app.login.login(EMAIL, PASSWORD, state)
        clock.advance(app.config.partial_session_ttl)

        outcome = app.totp.authenticate(state, totp_code(secret, clock))

        assert outcome == Rejected(RejectReason.INVALID_SESSION)
        assert state.login is ANONYMOUS

    def test_expired_partial_session_keeps_recovery_code(self, app, alice, state, clock):
        """A proof sent to an expired partial login is not spent."""
        grant_enrollment(app, alice)
        codes = app.recovery.generate(alice)
        app.login.login(EMAIL, PASSWORD, state)
        clock.advance(app.config.partial_session_ttl + 1)

        outcome = app.recovery.authenticate(state, codes[0])

        assert outcome == Rejected(RejectReason.INVALID_SESSION)
        assert state.login is ANONYMOUS
        assert app.recovery.remaining(alice) == len(codes)
        assert app.audit.events(EventType.SECOND_FACTOR_FAILED) == []

        app.login.login(EMAIL, PASSWORD, state)
        assert app.recovery.authenticate(state, codes[0]) == Authenticated(alice)

    def test_expired_partial_session_keeps_totp_step(self, app, alice, state, clock):
        secret = enroll_totp(app, alice, clock)
        app.login.login(EMAIL, PASSWORD, state)
        clock.advance(app.config.partial_session_ttl)
        code = totp_code(secret, clock)

        assert app.totp.authenticate(state, code) == Rejected(RejectReason.INVALID_SESSION)

        app.login.login(EMAIL, PASSWORD, state)
        assert app.totp.authenticate(state, code) == Authenticated(alice)

    def test_login_again_after_expiry(self, app, alice, state, clock):
        secret = enroll_totp(app, alice, clock)
        app.login.login(EMAIL, PASSWORD, state)
        clock.advance(app.config.partial_session_ttl + 1)

        assert isinstance(app.login.login(EMAIL, PASSWORD, state), FactorRequired)
        assert app.totp.authenticate(state, totp_code(secret, clock)) == Authenticated(alice)

    def test_factor_kind_must_be_pending(self, app, alice, state):
        grant_enrollment(app, alice)
        app.recovery.generate(alice)
        app.login.login(EMAIL, PASSWORD, state)

        outcome = app.login.complete_second_factor(state, alice, FactorKind.TOTP)

        assert outcome == Rejected(RejectReason.INVALID_SESSION)
        assert isinstance(state.login, PartialSession)

    def test_enrollment_change_invalidates_partial_session(self, app, alice, state, clock):
        secret = enroll_totp(app, alice, clock)
        app.login.login(EMAIL, PASSWORD, state)
        grant_enrollment(app, alice)
        app.recovery.generate(alice)

        outcome = app.totp.authenticate(state, totp_code(secret, clock))

        assert outcome == Rejected(RejectReason.INVALID_SESSION)
        assert state.login is ANONYMOUS

    def test_success_hook_failure_blocks_completion(self, users):
        principal = users.create_user(EMAIL, "alice", PASSWORD)
        recovery = RecoveryCodeProvider()
        factors = SecondFactorRegistry()
        factors.register(recovery)
        hooks = PolicyHookRegistry()

        def broken(principal):
            raise RuntimeError("counter store down")

        hooks.register(HookKind.POST_LOGIN_SUCCESS, broken)
        login, _ = build_login(users, hooks=hooks, factors=factors)
        codes = recovery.generate(principal.principal_id)
        state = SessionState()
        login.login(EMAIL, PASSWORD, state)

        assert recovery.authenticate(state, codes[0]) == Rejected(RejectReason.INTERNAL_ERROR)
        assert not state.is_authenticated


class TestDeferredRedemption:
    """Tests for action tokens stashed before login."""

    def test_activation_token_lets_inactive_user_in(self, app, state):
        pid = make_user(app, activate=False)
        token = app.tokens.issue(pid, ActionKind.ACTIVATE)

        assert app.login.submit_action_token(token, state) == TokenStashed()
        assert state.peek_token() == token

        assert app.login.login(EMAIL, PASSWORD, state) == Authenticated(pid)
        assert app.users.lookup(pid).activated
        assert state.peek_token() is None

    def test_enroll_factor_token(self, app, alice, state):
        token = app.tokens.issue(alice, ActionKind.ENROLL_FACTOR)
        app.login.submit_action_token(token, state)
        app.login.login(EMAIL, PASSWORD, state)
        assert app.users.lookup(alice).enrollment_granted

    def test_foreign_token_aborts_login(self, app, alice, state):
        bob = make_user(app, email="bob@example.com", activate=False)
        token = app.tokens.issue(bob, ActionKind.ACTIVATE)
        app.login.submit_action_token(token, state)

        outcome = app.login.login(EMAIL, PASSWORD, state)

        assert outcome == Rejected(RejectReason.INVALID_TOKEN, "principal_mismatch")
        assert state.login is ANONYMOUS
        # Still redeemable by its owner
        assert app.tokens.redeem(token, principal_id=bob).success

    def test_consumed_token_aborts_login(self, app, alice, state):
        token = app.tokens.issue(alice, ActionKind.ACTIVATE)
        app.tokens.redeem(token)
        app.login.submit_action_token(token, state)

        outcome = app.login.login(EMAIL, PASSWORD, state)

        assert outcome == Rejected(RejectReason.INVALID_TOKEN, "already_consumed")

    def test_expired_token_aborts_login(self, app, alice, state, clock):
        token = app.tokens.issue(alice, ActionKind.ACTIVATE, ttl=60)
        app.login.submit_action_token(token, state)
        clock.advance(60)

        assert app.login.login(EMAIL, PASSWORD, state) == Rejected(
            RejectReason.INVALID_TOKEN, "expired")

    def test_stash_is_kept_when_credentials_fail(self, app, state):
        pid = make_user(app, activate=False)
        token = app.tokens.issue(pid, ActionKind.ACTIVATE)
        app.login.submit_action_token(token, state)

        assert app.login.login(EMAIL, "WrongPass123!", state).reason is RejectReason.INVALID_CREDENTIALS
        assert state.peek_token() == token
        assert app.login.login(EMAIL, PASSWORD, state) == Authenticated(pid)

    def test_latest_stashed_token_wins(self, app, state):
        pid = make_user(app, activate=False)
        first = app.tokens.issue(pid, ActionKind.ENROLL_FACTOR)
        second = app.tokens.issue(pid, ActionKind.ACTIVATE)
        app.login.submit_action_token(first, state)
        app.login.submit_action_token(second, state)

        assert app.login.login(EMAIL, PASSWORD, state) == Authenticated(pid)
        assert not app.users.lookup(pid).enrollment_granted
        assert app.tokens.redeem(first).success

    def test_reset_token_is_not_redeemed_by_login(self, app, alice, state):
        token = app.tokens.issue(alice, ActionKind.RESET_PASSWORD, ttl=600)
        app.login.submit_action_token(token, state)

        outcome = app.login.login(EMAIL, PASSWORD, state)

        assert outcome == Rejected(RejectReason.INVALID_TOKEN, "kind_mismatch")
        assert app.users.verify(EMAIL, PASSWORD)[1]
        assert app.login.reset_password(state, NEW_PASSWORD, token=token) == ActionCompleted(
            alice, ActionKind.RESET_PASSWORD)

    def test_password_reset_scenario(self, app, alice, state):
        """After the reset action runs only the new password verifies."""
        token = app.tokens.issue(alice, ActionKind.RESET_PASSWORD, ttl=600)
        app.login.submit_action_token(token, state)

        outcome = app.login.reset_password(state, NEW_PASSWORD)
        assert outcome == ActionCompleted(alice, ActionKind.RESET_PASSWORD)
        assert outcome.code == "PasswordUpdated"
        assert state.login is ANONYMOUS

        assert app.login.login(EMAIL, PASSWORD, state) == Rejected(RejectReason.INVALID_CREDENTIALS)
        assert app.login.login(EMAIL, NEW_PASSWORD, state) == Authenticated(alice)

    def test_credential_changing_action_is_inconsistent(self, users):
        """A deferred action that changes the password fails the re-check."""
        pid = users.create_user(EMAIL, "alice", PASSWORD).principal_id
        login, tokens = build_login(
            users,
            deferred=DEFAULT_DEFERRED_KINDS | {ActionKind.RESET_PASSWORD},
            handlers={ActionKind.RESET_PASSWORD: lambda p, payload: users.apply_action(
                p, ActionKind.RESET_PASSWORD, {'password': NEW_PASSWORD})},
        )
        state = SessionState()
        login.submit_action_token(tokens.issue(pid, ActionKind.RESET_PASSWORD), state)

        outcome = login.login(EMAIL, PASSWORD, state)

        assert outcome == Rejected(RejectReason.INTERNAL_INCONSISTENCY)
        assert outcome.code == "InternalInconsistency"
        assert not state.is_authenticated

    def test_failing_action_is_internal_error(self, users):
        pid = users.create_user(EMAIL, "alice", PASSWORD).principal_id

        def broken(principal_id, payload):
            raise RuntimeError("user store down")

        login, tokens = build_login(users, handlers={ActionKind.ACTIVATE: broken})
        state = SessionState()
        login.submit_action_token(tokens.issue(pid, ActionKind.ACTIVATE), state)

        assert login.login(EMAIL, PASSWORD, state) == Rejected(RejectReason.INTERNAL_ERROR)


class TestPolicyHooks:
    """Tests for hook dispatch from the login."""

    def test_first_denying_pre_login_hook_short_circuits(self, users):
        users.create_user(EMAIL, "alice", PASSWORD)
        calls = []

        def deny(principal):
            calls.append("deny")
            return False, "MaintenanceWindow"

        def never(principal):
            calls.append("never")
            return True, None

        hooks = PolicyHookRegistry()
        hooks.register(HookKind.PRE_LOGIN, deny)
        hooks.register(HookKind.PRE_LOGIN, never)
        login, _ = build_login(users, hooks=hooks)

        outcome = login.login(EMAIL, PASSWORD, SessionState())

        assert outcome == Rejected(RejectReason.POLICY_DENIED, "MaintenanceWindow")
        assert outcome.code == "PolicyDenied"
        assert calls == ["deny"]

    def test_raising_pre_login_hook_is_internal_error(self, users):
        users.create_user(EMAIL, "alice", PASSWORD)

        def broken(principal):
            raise RuntimeError("policy store down")

        hooks = PolicyHookRegistry()
        hooks.register(HookKind.PRE_LOGIN, broken)
        login, _ = build_login(users, hooks=hooks)

        assert login.login(EMAIL, PASSWORD, SessionState()) == Rejected(RejectReason.INTERNAL_ERROR)

    def test_success_hook_failure_aborts_login(self, users):
        users.create_user(EMAIL, "alice", PASSWORD)
        calls = []

        def broken(principal):
            raise RuntimeError("counter store down")

        hooks = PolicyHookRegistry()
        hooks.register(HookKind.POST_LOGIN_SUCCESS, broken)
        hooks.register(HookKind.POST_LOGIN_SUCCESS, lambda p: calls.append(p.principal_id))
        login, _ = build_login(users, hooks=hooks)
        state = SessionState()

        assert login.login(EMAIL, PASSWORD, state) == Rejected(RejectReason.INTERNAL_ERROR)
        assert state.login is ANONYMOUS
        assert len(calls) == 1

    def test_failure_hook_error_never_masks_rejection(self, users):
        pid = users.create_user(EMAIL, "alice", PASSWORD).principal_id
        seen = []

        def broken(principal):
            raise RuntimeError("audit sink down")

        hooks = PolicyHookRegistry()
        hooks.register(HookKind.POST_LOGIN_FAILURE, broken)
        hooks.register(HookKind.POST_LOGIN_FAILURE, seen.append)
        login, _ = build_login(users, hooks=hooks)

        outcome = login.login(EMAIL, "WrongPass123!", SessionState())

        assert outcome == Rejected(RejectReason.INVALID_CREDENTIALS)
        assert seen[0].principal_id == pid

    def test_verifier_error_runs_failure_hooks(self, users):
        seen = []

        class FlakyVerifier:
            def verify(self, email, password):
                return None, False, RuntimeError("directory timeout")

        hooks = PolicyHookRegistry()
        hooks.register(HookKind.POST_LOGIN_FAILURE, seen.append)
        tokens = ActionTokenOrchestrator(InMemoryTokenStore(), b"k" * 32, DEFAULT_TOKEN_TTLS)
        login = LoginOrchestrator(FlakyVerifier(), users, tokens, SecondFactorRegistry(), hooks)

        assert login.login(EMAIL, PASSWORD, SessionState()) == Rejected(
            RejectReason.INVALID_CREDENTIALS)
        assert seen == [None]

    def test_raising_verifier_is_internal_error(self, users):
        seen = []

        class BrokenVerifier:
            def verify(self, email, password):
                raise ConnectionError("user database unreachable")

        hooks = PolicyHookRegistry()
        hooks.register(HookKind.POST_LOGIN_FAILURE, seen.append)
        tokens = ActionTokenOrchestrator(InMemoryTokenStore(), b"k" * 32, DEFAULT_TOKEN_TTLS)
        login = LoginOrchestrator(BrokenVerifier(), users, tokens, SecondFactorRegistry(), hooks)

        assert login.login(EMAIL, PASSWORD, SessionState()) == Rejected(RejectReason.INTERNAL_ERROR)
        assert seen == []


class TestSessionEndpoints:
    """Tests for logout, status and direct token endpoints."""

    def test_logout(self, app, alice, state):
        app.login.login(EMAIL, PASSWORD, state)

        assert app.login.logout(state) == LoggedOut()
        assert state.login is ANONYMOUS
        assert len(app.audit.events(EventType.LOGOUT)) == 1

    def test_logout_drops_partial_login(self, app, alice, state):
        grant_enrollment(app, alice)
        app.recovery.generate(alice)
        app.login.login(EMAIL, PASSWORD, state)
        assert app.login.logout(state) == LoggedOut()
        assert state.login is ANONYMOUS

    def test_logout_anonymous(self, app, state):
        assert app.login.logout(state) == Rejected(RejectReason.UNAUTHORIZED)

    def test_status(self, app, alice, state):
        assert app.login.status(state) == Rejected(RejectReason.UNAUTHORIZED)
        app.login.login(EMAIL, PASSWORD, state)
        assert app.login.status(state) == Authenticated(alice)

    def test_direct_redemption_when_authenticated(self, app, alice, state):
        app.login.login(EMAIL, PASSWORD, state)
        token = app.tokens.issue(alice, ActionKind.ENROLL_FACTOR)

        outcome = app.login.submit_action_token(token, state)

        assert outcome == ActionCompleted(alice, ActionKind.ENROLL_FACTOR)
        assert outcome.to_dict() == {'success': True, 'code': 'OK', 'action': 'enroll_factor'}
        assert app.users.lookup(alice).enrollment_granted
        assert state.peek_token() is None

    def test_direct_redemption_of_foreign_token(self, app, alice, state):
        bob = make_user(app, email="bob@example.com")
        app.login.login(EMAIL, PASSWORD, state)
        token = app.tokens.issue(bob, ActionKind.ENROLL_FACTOR)

        outcome = app.login.submit_action_token(token, state)

        assert outcome == Rejected(RejectReason.INVALID_TOKEN, "principal_mismatch")
        assert not app.users.lookup(bob).enrollment_granted

    def test_empty_token(self, app, state):
        assert app.login.submit_action_token("", state) == Rejected(RejectReason.INVALID_INPUT)

    def test_reset_password_requires_anonymous(self, app, alice, state):
        app.login.login(EMAIL, PASSWORD, state)
        token = app.tokens.issue(alice, ActionKind.RESET_PASSWORD)
        assert app.login.reset_password(state, NEW_PASSWORD, token) == Rejected(
            RejectReason.ALREADY_AUTHENTICATED)

    def test_reset_password_weak_password_keeps_stash(self, app, alice, state):
        token = app.tokens.issue(alice, ActionKind.RESET_PASSWORD)
        app.login.submit_action_token(token, state)

        outcome = app.login.reset_password(state, "weak")

        assert outcome.reason is RejectReason.INVALID_INPUT
        assert state.peek_token() == token

    def test_reset_password_without_token(self, app, alice, state):
        assert app.login.reset_password(state, NEW_PASSWORD).reason is RejectReason.INVALID_TOKEN

    def test_reset_password_with_wrong_kind(self, app, alice, state):
        token = app.tokens.issue(alice, ActionKind.ACTIVATE)
        assert app.login.reset_password(state, NEW_PASSWORD, token) == Rejected(
            RejectReason.INVALID_TOKEN, "kind_mismatch")
        assert app.users.verify(EMAIL, PASSWORD)[1]
