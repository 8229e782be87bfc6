from .base import BaseClient
from .permission_requests_client import PermissionRequestsClient
from .resource_client import BulkResponse, ResourceClient, parse_bulk_response, to_wire_datetime
from .third_party_api_client import ThirdPartyApiClient
from .users_client import UsersClient

__all__ = [
    "BaseClient",
    "BulkResponse",
    "PermissionRequestsClient",
    "ResourceClient",
    "ThirdPartyApiClient",
    "UsersClient",
    "parse_bulk_response",
    "to_wire_datetime",
]
