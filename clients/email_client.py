"""
Email gateway client for transactional auth email.

Templated messages (verification, password reset, password-changed) are
rendered by the gateway; this client only names the template, the
recipient and the template parameters. Requests are authenticated with an
HMAC-SHA256 signature over the exact JSON body.

Constructed once at startup and injected into the services that send mail.
"""

import hashlib
import hmac
import json
import logging
from enum import Enum
from typing import Any

import requests

logger = logging.getLogger(__name__)


class EmailGatewayError(Exception):
    """Raised when email gateway request fails."""


class EmailTemplate(str, Enum):
    """Transactional templates known to the gateway."""

    VERIFY_EMAIL = "verify_email"
    PASSWORD_RESET = "password_reset"
    PASSWORD_CHANGED = "password_changed"


class EmailGatewayClient:
    """Send emails via HTTP gateway with HMAC signature verification."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str, timeout: int = 10):
        """
        Initialize with gateway credentials.

        Args:
            gateway_url: Full URL to the email gateway endpoint
            api_key: API key for X-API-Key header
            hmac_secret: Secret for HMAC-SHA256 signature
            timeout: Per-request timeout in seconds

        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not hmac_secret:
            raise ValueError("hmac_secret is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret
        self.timeout = timeout

    def _sign(self, payload_json: str) -> str:
        return hmac.new(
            self.hmac_secret.encode("utf-8"),
            payload_json.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def _sign_and_send(self, payload: dict) -> None:
        """
        Sign payload with HMAC and send to gateway.

        Raises:
            EmailGatewayError: On any failure
        """
        payload_json = json.dumps(payload, separators=(",", ":"))

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": self._sign(payload_json),
        }

        try:
            response = requests.post(
                self.gateway_url,
                data=payload_json,
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"Email gateway connection failed: {e}")
            raise EmailGatewayError(f"Connection failed: {e}")

        try:
            response_data = response.json()
        except ValueError:
            logger.error(f"Email gateway returned invalid JSON: {response.text}")
            raise EmailGatewayError("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"Email gateway error: {error_msg}")
            raise EmailGatewayError(f"Gateway error: {error_msg}")

    def send_transactional_email(
        self,
        template: EmailTemplate,
        recipient: str,
        params: dict[str, Any],
    ) -> None:
        """
        Send a templated transactional email.

        Args:
            template: Which gateway template to render
            recipient: Recipient email address
            params: Template variables (names, links, app name)

        Raises:
            EmailGatewayError: On gateway failure
        """
        payload = {
            "type": "template",
            "template": EmailTemplate(template).value,
            "email": recipient,
            "params": params,
            "sender": "auth",
        }
        self._sign_and_send(payload)
        logger.info(f"Transactional email '{EmailTemplate(template).value}' sent to {recipient}")
