"""Application assembly: services, middleware, routes."""

import logging
from dataclasses import dataclass

from fastapi import FastAPI

from api.base import success_response
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.api import create_auth_router
from auth.api_keys import ApiKeyService
from auth.config import AuthConfig, TokenSecrets
from auth.database import AuthDatabase
from auth.mailer import AuthMailer
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger
from auth.security_middleware import AuthMiddleware
from auth.service import AccountService
from auth.session import SessionManager
from auth.tokens import TokenIssuer
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import get_database_url, get_email_config, get_jwt_secrets, get_valkey_url

logger = logging.getLogger(__name__)


@dataclass
class AuthServices:
    """The wired auth components an app is built from."""

    config: AuthConfig
    session_manager: SessionManager
    account_service: AccountService
    api_key_service: ApiKeyService
    rate_limiter: RateLimiter
    security_logger: SecurityLogger


def build_auth_services(
    config: AuthConfig,
    token_secrets: TokenSecrets,
    auth_db: AuthDatabase,
    security_logger: SecurityLogger,
    valkey: ValkeyClient,
    email_client: EmailGatewayClient,
) -> AuthServices:
    """Wire auth services from infrastructure clients."""
    mailer = AuthMailer(email_client, config)
    session_manager = SessionManager(
        config=config,
        auth_db=auth_db,
        token_issuer=TokenIssuer(token_secrets, config),
        security_logger=security_logger,
        mailer=mailer,
    )
    return AuthServices(
        config=config,
        session_manager=session_manager,
        account_service=AccountService(
            config=config,
            auth_db=auth_db,
            session_manager=session_manager,
            security_logger=security_logger,
            mailer=mailer,
        ),
        api_key_service=ApiKeyService(auth_db, security_logger),
        rate_limiter=RateLimiter(valkey, config),
        security_logger=security_logger,
    )


def create_app(services: AuthServices) -> FastAPI:
    """FastAPI app with request IDs, auth middleware, error handlers and /auth routes."""
    app = FastAPI(title=services.config.app_name)
    app.add_middleware(
        AuthMiddleware,
        session_manager=services.session_manager,
        api_key_service=services.api_key_service,
    )
    # Added last so it runs outermost and tags auth rejections too
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(
        create_auth_router(
            session_manager=services.session_manager,
            account_service=services.account_service,
            api_key_service=services.api_key_service,
            rate_limiter=services.rate_limiter,
            security_logger=services.security_logger,
            config=services.config,
        ),
        prefix="/auth",
    )

    @app.get("/health")
    async def health():
        return success_response({"status": "ok"}).to_json()

    return app


def create_app_from_vault(config: AuthConfig | None = None) -> FastAPI:
    """Production entry point: infrastructure credentials come from Vault."""
    config = config or AuthConfig()
    postgres = PostgresClient(get_database_url())
    email = get_email_config()

    services = build_auth_services(
        config=config,
        token_secrets=TokenSecrets(**get_jwt_secrets()),
        auth_db=AuthDatabase(postgres),
        security_logger=SecurityLogger(postgres),
        valkey=ValkeyClient(get_valkey_url()),
        email_client=EmailGatewayClient(
            gateway_url=email["gateway_url"],
            api_key=email["api_key"],
            hmac_secret=email["hmac_secret"],
        ),
    )
    logger.info("Auth services initialized")
    return create_app(services)
