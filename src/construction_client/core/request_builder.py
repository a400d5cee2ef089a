"""
Request builder utilities: URLs, keys, headers and bodies.
"""
import itertools
import logging
import secrets
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qsl, quote, urlencode, urljoin, urlsplit, urlunsplit

import httpx

from ..config import DefaultSerializer, default_serializer
from ..types import QueryValue, RequestDescriptor

logger = logging.getLogger("construction_client.request_builder")


def _encode_query_value(value: QueryValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_url(
    base_url: str,
    path: str,
    query: Optional[Mapping[str, QueryValue]] = None,
) -> str:
    """Build the fully-resolved URL.

    Query parameters already present in ``path`` are merged with ``query``,
    ``None`` values are dropped, and the result is sorted so that the same
    logical request always produces the same string.
    """
    if path.startswith(("http://", "https://")):
        url = path
    elif path.startswith("/"):
        parsed = urlsplit(base_url)
        base_path = parsed.path.rstrip("/")
        url = f"{parsed.scheme}://{parsed.netloc}{base_path}{path}"
    elif path:
        if not base_url.endswith("/"):
            base_url = base_url + "/"
        url = urljoin(base_url, path)
    else:
        url = base_url

    parts = urlsplit(url)
    pairs: List[Tuple[str, str]] = parse_qsl(parts.query, keep_blank_values=True)
    if query:
        pairs.extend(
            (key, _encode_query_value(value))
            for key, value in query.items()
            if value is not None
        )

    query_str = urlencode(sorted(pairs), quote_via=quote)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query_str, ""))


def canonical_signature(method: str, url: str) -> str:
    """Cache and dedup key of a GET: ``METHOD:resolved-url``."""
    return f"{method.upper()}:{url}"


def post_dedupe_key(
    url: str,
    body: Any,
    dedupe_key: Union[str, bool, None] = None,
    serializer: DefaultSerializer = default_serializer,
) -> Optional[str]:
    """Dedup key of a POST, or None when dedup is switched off."""
    if dedupe_key is False:
        return None
    if isinstance(dedupe_key, str) and dedupe_key:
        return f"POST:{dedupe_key}"
    return f"POST:{url}|{serializer.serialize_stable(body)}"


def rate_limit_key(descriptor: RequestDescriptor, url: str) -> str:
    return descriptor.rate_key or f"{descriptor.method}:{url}"


class RequestIdGenerator:
    """Produces unique, strictly increasing X-Request-Id values per client."""

    def __init__(self) -> None:
        self._prefix = secrets.token_hex(4)
        self._counter = itertools.count(1)

    def __call__(self) -> str:
        return f"req_{self._prefix}_{next(self._counter):08d}"


def _drop_header(headers: Dict[str, str], name: str) -> None:
    for key in [k for k in headers if k.lower() == name.lower()]:
        del headers[key]


def set_header(headers: Dict[str, str], name: str, value: str) -> None:
    """Set a header, replacing any spelling of the same name."""
    _drop_header(headers, name)
    headers[name] = value


def build_headers(
    default_headers: Mapping[str, str],
    descriptor: RequestDescriptor,
    *,
    request_id: str,
    access_token: Optional[str] = None,
    conditional: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Build request headers for one attempt."""
    result = dict(default_headers)
    for name, value in descriptor.headers.items():
        set_header(result, name, value)

    if descriptor.files:
        # httpx writes the multipart boundary itself
        _drop_header(result, "content-type")

    if "accept" not in {k.lower() for k in result}:
        result["Accept"] = "application/json"

    if access_token:
        set_header(result, "Authorization", f"Bearer {access_token}")

    set_header(result, "X-Request-Id", request_id)

    for name, value in (conditional or {}).items():
        set_header(result, name, value)

    return result


def build_body(
    descriptor: RequestDescriptor,
    serializer: DefaultSerializer = default_serializer,
) -> Optional[Union[str, bytes]]:
    """Build request body."""
    if descriptor.content is not None:
        return descriptor.content

    if descriptor.body is not None and not descriptor.files:
        return serializer.serialize(descriptor.body)

    return None


class UploadProgressStream(httpx.AsyncByteStream):
    """Wraps an encoded multipart body and reports bytes handed to the transport."""

    def __init__(
        self,
        stream: httpx.AsyncByteStream,
        total: int,
        on_progress: Callable[[int, int], None],
    ) -> None:
        self._stream = stream
        self._total = total
        self._on_progress = on_progress

    async def __aiter__(self) -> AsyncIterator[bytes]:
        sent = 0
        async for chunk in self._stream:
            sent += len(chunk)
            self._on_progress(sent, self._total or sent)
            yield chunk
