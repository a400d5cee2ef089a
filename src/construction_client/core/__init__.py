"""
Core request pipeline.
"""
from .dispatcher import RequestDispatcher
from .request_builder import (
    RequestIdGenerator,
    build_body,
    build_headers,
    build_url,
    canonical_signature,
    post_dedupe_key,
    rate_limit_key,
)

__all__ = [
    "RequestDispatcher",
    "RequestIdGenerator",
    "build_body",
    "build_headers",
    "build_url",
    "canonical_signature",
    "post_dedupe_key",
    "rate_limit_key",
]
