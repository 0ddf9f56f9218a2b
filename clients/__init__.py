# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    VaultError,
    get_database_url,
    get_valkey_url,
    get_email_config,
    get_jwt_secrets,
)
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.email_client import EmailGatewayClient, EmailGatewayError, EmailTemplate
from clients.crm_api_client import CRMApiClient, SessionExpiredError
