"""Tests for AccountService - registration, email verification, forgot-password."""

from datetime import timedelta

import pytest

from auth.exceptions import (
    EmailAlreadyRegisteredError,
    EmailAlreadyVerifiedError,
    EmailDeliveryFailedError,
    OneTimeTokenInvalidError,
    ValidationFailedError,
)
from auth.passwords import generate_one_time_token, hash_token
from auth.security_logger import SecurityEvent
from clients.email_client import EmailGatewayError
from utils.timezone import now_utc


def _register(account_service, email="new@example.com", password="Secret123"):
    return account_service.register("New", "Person", email, password, ip_address="10.0.0.9")


class TestRegister:

    def test_creates_account_and_session(self, account_service, auth_db):
        result = _register(account_service)

        assert result.user.email == "new@example.com"
        assert not result.user.email_verified
        assert auth_db.has_refresh_token(result.user.id, result.tokens.refresh_token)

    def test_email_lowercased(self, account_service):
        result = _register(account_service, email="New@Example.COM")
        assert result.user.email == "new@example.com"

    def test_duplicate_email(self, account_service, user):
        with pytest.raises(EmailAlreadyRegisteredError):
            _register(account_service, email="ALICE@example.com")

    def test_password_policy_enforced(self, account_service, auth_db):
        with pytest.raises(ValidationFailedError):
            _register(account_service, password="password")
        assert auth_db.get_user_by_email("new@example.com") is None

    def test_sends_verification_with_matching_token(self, account_service, auth_db, mailer):
        result = _register(account_service)

        sent_user, raw_token = mailer.send_verification.call_args.args
        assert sent_user.id == result.user.id
        stored = auth_db.get_user_by_id(result.user.id)
        assert stored.email_verification_token_hash == hash_token(raw_token)

    def test_verification_expires_in_24_hours(self, account_service, auth_db):
        result = _register(account_service)
        expires_at = auth_db.get_user_by_id(result.user.id).email_verification_expires_at
        assert abs((expires_at - (now_utc() + timedelta(hours=24))).total_seconds()) < 5

    def test_email_failure_still_registers(self, account_service, auth_db, mailer):
        mailer.send_verification.side_effect = EmailGatewayError("gateway down")

        result = _register(account_service)

        assert auth_db.get_user_by_id(result.user.id) is not None

    def test_logs_registration(self, account_service, security_logger):
        _register(account_service)
        assert security_logger.log.call_args.args[0] == SecurityEvent.USER_REGISTERED


class TestVerifyEmail:

    def test_marks_verified(self, account_service, auth_db, mailer):
        registered = _register(account_service)
        raw_token = mailer.send_verification.call_args.args[1]

        verified = account_service.verify_email(raw_token)

        assert verified.id == registered.user.id
        assert auth_db.get_user_by_id(registered.user.id).email_verified

    def test_single_use(self, account_service, mailer):
        _register(account_service)
        raw_token = mailer.send_verification.call_args.args[1]
        account_service.verify_email(raw_token)

        with pytest.raises(OneTimeTokenInvalidError):
            account_service.verify_email(raw_token)

    def test_expired(self, account_service, auth_db, user):
        raw, digest = generate_one_time_token()
        auth_db.set_email_verification_token(user.id, digest, now_utc() - timedelta(minutes=1))

        with pytest.raises(OneTimeTokenInvalidError):
            account_service.verify_email(raw)

    def test_unknown(self, account_service):
        with pytest.raises(OneTimeTokenInvalidError):
            account_service.verify_email("0" * 64)


class TestResendVerification:

    def test_already_verified(self, account_service, user):
        with pytest.raises(EmailAlreadyVerifiedError):
            account_service.resend_verification(user.id)

    def test_replaces_pending_token(self, account_service, auth_db, mailer):
        registered = _register(account_service)
        first_token = mailer.send_verification.call_args.args[1]

        account_service.resend_verification(registered.user.id)
        second_token = mailer.send_verification.call_args.args[1]

        assert first_token != second_token
        with pytest.raises(OneTimeTokenInvalidError):
            account_service.verify_email(first_token)
        account_service.verify_email(second_token)

    def test_email_failure_withdraws_token(self, account_service, auth_db, mailer):
        registered = _register(account_service)
        mailer.send_verification.side_effect = EmailGatewayError("gateway down")

        with pytest.raises(EmailDeliveryFailedError):
            account_service.resend_verification(registered.user.id)

        assert auth_db.get_user_by_id(registered.user.id).email_verification_token_hash is None


class TestForgotPassword:

    def test_unknown_email_is_silent(self, account_service, mailer):
        account_service.forgot_password("nobody@example.com")
        mailer.send_password_reset.assert_not_called()

    def test_stores_token_and_emails_it(self, account_service, auth_db, mailer, user):
        account_service.forgot_password("Alice@Example.com")

        sent_user, raw_token = mailer.send_password_reset.call_args.args
        assert sent_user.id == user.id
        stored = auth_db.get_user_by_id(user.id)
        assert stored.password_reset_token_hash == hash_token(raw_token)

    def test_token_valid_for_configured_minutes(self, account_service, auth_db, user, config):
        account_service.forgot_password(user.email)
        expires_at = auth_db.get_user_by_id(user.id).password_reset_expires_at
        expected = now_utc() + timedelta(minutes=config.password_reset_minutes)
        assert abs((expires_at - expected).total_seconds()) < 5

    def test_email_failure_withdraws_token(self, account_service, auth_db, mailer, user):
        mailer.send_password_reset.side_effect = EmailGatewayError("gateway down")

        with pytest.raises(EmailDeliveryFailedError):
            account_service.forgot_password(user.email)

        assert auth_db.get_user_by_id(user.id).password_reset_token_hash is None

    def test_emailed_token_resets_password(self, account_service, session_manager, mailer, user):
        account_service.forgot_password(user.email)
        raw_token = mailer.send_password_reset.call_args.args[1]

        session_manager.reset_password(raw_token, "NewSecret456")

        session_manager.login(user.email, "NewSecret456", None, None)
