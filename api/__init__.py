"""API modules for HTTP interface."""

from api.base import (
    APIResponse,
    success_response,
    error_response,
    ErrorCodes,
)
