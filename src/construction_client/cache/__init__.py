"""
Response validation cache and in-flight request registry.
"""
from .etag import EtagCache, extract_etag
from .inflight import InFlightRegistry

__all__ = [
    "EtagCache",
    "extract_etag",
    "InFlightRegistry",
]
