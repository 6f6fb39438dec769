"""
Paperfolio Dependencies Package
"""

from paperfolio.dependencies.auth import (
    create_access_token,
    decode_token,
    get_current_user,
    get_token_payload,
    hash_password,
    http_bearer,
    is_password_strong,
    pwd_context,
    require_admin,
    require_role,
    require_user,
    validate_stream_token,
    verify_password,
)
from paperfolio.dependencies.services import (
    close_clients,
    get_chart_service,
    get_finnhub_client,
    get_mystery_page_service,
    get_price_service,
    get_rapidapi_client,
    get_stream_hub,
    get_trading_service,
    get_wikipedia_client,
)

__all__ = [
    # Password utilities
    "verify_password",
    "hash_password",
    "is_password_strong",
    "pwd_context",
    # Token utilities
    "create_access_token",
    "decode_token",
    "validate_stream_token",
    # Dependencies
    "get_token_payload",
    "get_current_user",
    "require_role",
    "require_admin",
    "require_user",
    # Schemes
    "http_bearer",
    # Services
    "get_finnhub_client",
    "get_rapidapi_client",
    "get_stream_hub",
    "close_clients",
    "get_price_service",
    "get_chart_service",
    "get_trading_service",
    "get_wikipedia_client",
    "get_mystery_page_service",
]
