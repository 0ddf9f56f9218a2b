"""Auth emails: verification, password reset, password-changed notice."""

from auth.config import AuthConfig
from auth.types import UserAccount
from clients.email_client import EmailGatewayClient, EmailTemplate


class AuthMailer:
    """Builds client links and template params for auth emails.

    All methods raise EmailGatewayError on delivery failure; whether that
    is fatal is the caller's decision.
    """

    def __init__(self, email_client: EmailGatewayClient, config: AuthConfig):
        self._email_client = email_client
        self._config = config

    def _base_params(self, user: UserAccount) -> dict[str, str]:
        return {"first_name": user.first_name, "app_name": self._config.app_name}

    def send_verification(self, user: UserAccount, raw_token: str) -> None:
        params = self._base_params(user)
        params["verify_url"] = f"{self._config.app_base_url}/verify-email/{raw_token}"
        params["expires_hours"] = str(self._config.email_verification_hours)
        self._email_client.send_transactional_email(EmailTemplate.VERIFY_EMAIL, user.email, params)

    def send_password_reset(self, user: UserAccount, raw_token: str) -> None:
        params = self._base_params(user)
        params["reset_url"] = f"{self._config.app_base_url}/reset-password/{raw_token}"
        params["expires_minutes"] = str(self._config.password_reset_minutes)
        self._email_client.send_transactional_email(EmailTemplate.PASSWORD_RESET, user.email, params)

    def send_password_changed(self, user: UserAccount) -> None:
        self._email_client.send_transactional_email(
            EmailTemplate.PASSWORD_CHANGED, user.email, self._base_params(user)
        )
