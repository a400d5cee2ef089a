"""
Token storage and refresh coordination.
"""
from .token_store import TokenStore
from .refresh import RefreshCoordinator, RefreshFn, extract_token_pair

__all__ = [
    "TokenStore",
    "RefreshCoordinator",
    "RefreshFn",
    "extract_token_pair",
]
