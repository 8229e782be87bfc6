from .clients import BulkResponse, PermissionRequestsClient, ResourceClient, ThirdPartyApiClient, UsersClient
from .config import ClientConfig, ConfigError, load_config
from .exceptions import (
    ApiError,
    ConflictError,
    ForbiddenError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    UnauthorizedError,
    ValidationError,
)
from .http_client import AsyncHttpClient
from .idempotency import build_idempotency_headers, generate_idempotency_key
from .models import (
    AvailableRole,
    EntityId,
    LogItem,
    PagedResult,
    PermissionRequestItem,
    ThirdPartyApiRequestItem,
    ThirdPartyApiStatistics,
    UserItem,
)
from .normalizers import normalize_page

__all__ = [
    "ApiError",
    "AsyncHttpClient",
    "AvailableRole",
    "BulkResponse",
    "ClientConfig",
    "ConfigError",
    "ConflictError",
    "EntityId",
    "ForbiddenError",
    "LogItem",
    "NetworkError",
    "NotFoundError",
    "PagedResult",
    "PermissionRequestsClient",
    "PermissionRequestItem",
    "RateLimitError",
    "ResourceClient",
    "ServerError",
    "ThirdPartyApiClient",
    "ThirdPartyApiRequestItem",
    "ThirdPartyApiStatistics",
    "UnauthorizedError",
    "UserItem",
    "UsersClient",
    "ValidationError",
    "build_idempotency_headers",
    "generate_idempotency_key",
    "load_config",
    "normalize_page",
]
