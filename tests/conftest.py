"""Shared test fixtures for the auth test suite.

Nothing here needs Valkey, Vault or the email gateway: the credential
store and Valkey are in-memory doubles (tests/fakes.py), and collaborators
at the edges are Mock(spec=...). The `pg` fixture is the exception: it
connects to TEST_DATABASE_URL (usually set in .env) and skips without it.
"""

import os
from pathlib import Path
from unittest.mock import Mock

import psycopg2
import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton so no test reuses cached secrets
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from fastapi.testclient import TestClient

from api.app import AuthServices, build_auth_services, create_app
from auth.api_keys import ApiKeyService
from auth.config import AuthConfig, TokenSecrets
from auth.mailer import AuthMailer
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger
from auth.service import AccountService
from auth.session import SessionManager
from auth.tokens import TokenIssuer
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from fakes import TEST_PASSWORD, FakeValkey, InMemoryAuthDatabase
from utils.user_context import clear_current_user


# =============================================================================
# USER CONTEXT
# =============================================================================


@pytest.fixture(autouse=True)
def reset_user_context():
    """Ensure clean user context before and after each test."""
    clear_current_user()
    yield
    clear_current_user()


# =============================================================================
# CONFIG
# =============================================================================


@pytest.fixture
def config() -> AuthConfig:
    """Defaults except cheap bcrypt and a cookie that TestClient sends over http."""
    return AuthConfig(
        bcrypt_rounds=4,
        cookie_secure=False,
        app_base_url="https://crm.example.com",
    )


@pytest.fixture
def token_secrets() -> TokenSecrets:
    return TokenSecrets(
        access_secret="access-secret-for-tests-0123456789abcdef",
        refresh_secret="refresh-secret-for-tests-0123456789abcdef",
    )


# =============================================================================
# DATABASE
# =============================================================================

SCHEMA_PATH = Path(__file__).parent.parent / "auth" / "schema.sql"


@pytest.fixture(scope="session")
def pg():
    """Session-scoped PostgresClient on a scratch database with schema.sql applied."""
    database_url = os.environ.get("TEST_DATABASE_URL")
    if not database_url:
        pytest.skip("TEST_DATABASE_URL not set")

    try:
        client = PostgresClient(database_url)
        client.execute(SCHEMA_PATH.read_text())
    except psycopg2.OperationalError as e:
        PostgresClient.close_all_pools()
        pytest.skip(f"Postgres unavailable: {e}")

    yield client
    client.close()


# =============================================================================
# STORAGE DOUBLES
# =============================================================================


@pytest.fixture
def auth_db() -> InMemoryAuthDatabase:
    return InMemoryAuthDatabase()


@pytest.fixture
def valkey() -> FakeValkey:
    return FakeValkey()


@pytest.fixture
def security_logger():
    return Mock(spec=SecurityLogger)


@pytest.fixture
def mailer():
    return Mock(spec=AuthMailer)


# =============================================================================
# SERVICES
# =============================================================================


@pytest.fixture
def token_issuer(token_secrets, config) -> TokenIssuer:
    return TokenIssuer(token_secrets, config)


@pytest.fixture
def session_manager(config, auth_db, token_issuer, security_logger, mailer) -> SessionManager:
    return SessionManager(
        config=config,
        auth_db=auth_db,
        token_issuer=token_issuer,
        security_logger=security_logger,
        mailer=mailer,
    )


@pytest.fixture
def account_service(config, auth_db, session_manager, security_logger, mailer) -> AccountService:
    return AccountService(
        config=config,
        auth_db=auth_db,
        session_manager=session_manager,
        security_logger=security_logger,
        mailer=mailer,
    )


@pytest.fixture
def api_key_service(auth_db, security_logger) -> ApiKeyService:
    return ApiKeyService(auth_db, security_logger)


@pytest.fixture
def rate_limiter(valkey, config) -> RateLimiter:
    return RateLimiter(valkey, config)


@pytest.fixture
def user(auth_db):
    """Active, verified account with password TEST_PASSWORD."""
    return auth_db.add_user(email="alice@example.com", password=TEST_PASSWORD, email_verified=True)


# =============================================================================
# APP & CLIENT
# =============================================================================


@pytest.fixture
def email_client():
    return Mock(spec=EmailGatewayClient)


@pytest.fixture
def auth_services(config, token_secrets, auth_db, security_logger, valkey, email_client) -> AuthServices:
    """Fully wired services over the in-memory store and a mocked gateway."""
    return build_auth_services(
        config=config,
        token_secrets=token_secrets,
        auth_db=auth_db,
        security_logger=security_logger,
        valkey=valkey,
        email_client=email_client,
    )


@pytest.fixture
def app(auth_services):
    return create_app(auth_services)


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)
