"""
construction_client - async HTTP client for the construction management API.

One ApiClient owns the whole request pipeline: client-side throttling,
dedup of identical in-flight calls, ETag revalidation, single-flight token
refresh on 401, bounded retry for reads and a notification bus for
slow-request, server-error and auth-redirect events.

Example:
    from construction_client import ApiClient, ClientConfig

    async with ApiClient(ClientConfig(base_url="https://api.example.com")) as client:
        response = await client.get("/api/projects", query={"page": 1})
        print(response["data"])
"""
from . import api_utils
from .auth import RefreshCoordinator, TokenStore, extract_token_pair
from .cache import EtagCache, InFlightRegistry, extract_etag
from .client import ApiClient, create_client
from .config import (
    DEFAULT_BASE_URL,
    ClientConfig,
    DefaultSerializer,
    ResolvedConfig,
    load_config_from_env,
    resolve_config,
)
from .core import RequestDispatcher, build_url, canonical_signature
from .errors import (
    ApiError,
    AuthError,
    ClientError,
    NetworkError,
    RateLimitedError,
    RequestCancelledError,
    ServerError,
    classify_status,
)
from .notifications import NotificationBus
from .rate_limit import RateLimiter
from .resources import (
    ENDPOINTS,
    AnalyticsApi,
    AuthApi,
    CellsApi,
    ChatApi,
    ConstructionApi,
    FilesApi,
    ProjectsApi,
    SheetsApi,
)
from .retry import RetryPolicy
from .types import (
    CacheEntry,
    FetchResponse,
    InFlightEntry,
    Notification,
    NotificationKind,
    NotificationListener,
    RateLimitRecord,
    RefreshState,
    RequestDescriptor,
    TokenPair,
)

__version__ = "1.0.0"

__all__ = [
    # Client
    "ApiClient",
    "create_client",
    "ConstructionApi",
    # Config
    "ClientConfig",
    "ResolvedConfig",
    "DefaultSerializer",
    "DEFAULT_BASE_URL",
    "resolve_config",
    "load_config_from_env",
    # Pipeline components
    "RequestDispatcher",
    "RefreshCoordinator",
    "TokenStore",
    "EtagCache",
    "InFlightRegistry",
    "RateLimiter",
    "RetryPolicy",
    "NotificationBus",
    "build_url",
    "canonical_signature",
    "extract_etag",
    "extract_token_pair",
    # Types
    "RequestDescriptor",
    "FetchResponse",
    "TokenPair",
    "CacheEntry",
    "InFlightEntry",
    "RefreshState",
    "RateLimitRecord",
    "Notification",
    "NotificationKind",
    "NotificationListener",
    # Errors
    "ApiError",
    "NetworkError",
    "ServerError",
    "ClientError",
    "AuthError",
    "RateLimitedError",
    "RequestCancelledError",
    "classify_status",
    # Resources
    "ENDPOINTS",
    "AuthApi",
    "ProjectsApi",
    "SheetsApi",
    "CellsApi",
    "FilesApi",
    "ChatApi",
    "AnalyticsApi",
    "api_utils",
]
