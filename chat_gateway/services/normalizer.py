"""
EVENT NORMALIZER MODULE
=======================

Turns whatever the hosting runtime hands us into a CanonicalRequest.

The same function is deployed behind several transports, each with its own
event shape:

  - aliyun event functions deliver the HTTP trigger envelope as a raw byte buffer;
  - API gateways and HTTP triggers (aliyun FC3, AWS-style v1/v2) pass a mapping
    with httpMethod / requestContext.http.method and path / rawPath;
  - Node/Vercel-style runtimes pass a request object with attributes;
  - the local development server (chat_gateway.main) passes its raw request parts.

Each shape has a small adapter that turns it into a plain mapping. A single
routine then applies the precedence rules, so every transport resolves method,
path, query, headers and body the same way.

FAIL-OPEN:
  normalize_event() never raises. Anything it cannot understand falls back to
  GET / with empty headers and body, and a warning is logged. A request that
  lands on "not found" is better than a crashed invocation.
"""

import base64
import binascii
import json
import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, unquote, urljoin, urlsplit

from chat_gateway.models import CanonicalRequest

logger = logging.getLogger("chat_gateway")

# Synthetic origin used to parse paths; only the path and query survive.
_SYNTHETIC_BASE = "http://localhost/"

# Headers some gateways use to carry the original request URI.
PATH_FALLBACK_HEADERS = ("x-fc-request-uri", "x-forwarded-uri", "x-original-uri")


# ==============================================================================
# INPUT-SHAPE ADAPTERS
# ==============================================================================

class EventAdapter:
    """One inbound event shape. matches() picks the adapter, to_mapping() converts."""

    name = "base"

    def matches(self, event: Any) -> bool:
        raise NotImplementedError

    def to_mapping(self, event: Any) -> Dict[str, Any]:
        raise NotImplementedError


class RawBufferAdapter(EventAdapter):
    """Byte buffers (aliyun event function) or JSON text: decode UTF-8, parse JSON."""

    name = "raw-buffer"

    def matches(self, event: Any) -> bool:
        return isinstance(event, (bytes, bytearray, memoryview, str))

    def to_mapping(self, event: Any) -> Dict[str, Any]:
        text = event if isinstance(event, str) else bytes(event).decode("utf-8")
        if not text.strip():
            return {}
        parsed = json.loads(text)
        if not isinstance(parsed, Mapping):
            logger.warning("Event buffer is JSON but not an object (%s); using defaults", type(parsed).__name__)
            return {}
        return dict(parsed)


class MappingAdapter(EventAdapter):
    """API gateway / HTTP trigger / dev server events are already mappings."""

    name = "mapping"

    def matches(self, event: Any) -> bool:
        return isinstance(event, Mapping)

    def to_mapping(self, event: Any) -> Dict[str, Any]:
        return dict(event)


class RequestObjectAdapter(EventAdapter):
    """
    Attribute-style request objects (Node/Vercel-like req): method, path or url,
    headers, body and an optional query mapping.
    """

    name = "request-object"

    def matches(self, event: Any) -> bool:
        return event is not None and (hasattr(event, "method") or hasattr(event, "httpMethod"))

    def to_mapping(self, event: Any) -> Dict[str, Any]:
        mapping: Dict[str, Any] = {}
        for attr in ("httpMethod", "method", "rawPath", "path", "headers", "body",
                     "isBase64Encoded", "queryStringParameters", "requestContext"):
            value = getattr(event, attr, None)
            if value is not None and not callable(value):
                mapping[attr] = value
        # Node's IncomingMessage keeps path + query in .url.
        if "path" not in mapping and "rawPath" not in mapping:
            url = getattr(event, "url", None)
            if isinstance(url, str):
                mapping["path"] = url
        query = getattr(event, "query", None)
        if "queryStringParameters" not in mapping and isinstance(query, Mapping):
            mapping["queryStringParameters"] = dict(query)
        return mapping


class DevServerAdapter(EventAdapter):
    """
    Local development server. The server hands over its raw request parts via
    event_from_dev_request(); the result is a mapping tagged with a marker so it
    is recognised here before the generic mapping adapter.
    """

    name = "dev-server"
    MARKER = "x-dev-server"

    def matches(self, event: Any) -> bool:
        return isinstance(event, Mapping) and event.get(self.MARKER) is True

    def to_mapping(self, event: Any) -> Dict[str, Any]:
        mapping = dict(event)
        mapping.pop(self.MARKER, None)
        return mapping


def event_from_dev_request(
    method: str,
    path: str,
    query_string: str,
    headers: Mapping,
    body: bytes,
) -> Dict[str, Any]:
    """
    Build a gateway-style event from a raw HTTP request (used by chat_gateway.main).

    Bodies that are not valid UTF-8 travel base64-encoded, exactly like an API
    gateway would send a binary upload.
    """
    event: Dict[str, Any] = {
        DevServerAdapter.MARKER: True,
        "httpMethod": method,
        "rawPath": f"{path}?{query_string}" if query_string else path,
        "headers": dict(headers),
        "isBase64Encoded": False,
        "body": "",
    }
    if body:
        try:
            event["body"] = body.decode("utf-8")
        except UnicodeDecodeError:
            event["body"] = base64.b64encode(body).decode("ascii")
            event["isBase64Encoded"] = True
    return event


# Order matters: the dev-server marker is checked before the generic mapping.
ADAPTERS: List[EventAdapter] = [
    RawBufferAdapter(),
    DevServerAdapter(),
    MappingAdapter(),
    RequestObjectAdapter(),
]


# ==============================================================================
# FIELD RESOLUTION
# ==============================================================================

def _normalize_headers(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, Mapping):
        return {}
    headers = {}
    for key, value in raw.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(v) for v in value)
        headers[str(key).lower()] = str(value)
    return headers


def resolve_method(mapping: Mapping) -> str:
    """httpMethod -> requestContext.http.method -> method -> GET (case preserved)."""
    method = mapping.get("httpMethod")
    if not method:
        context = mapping.get("requestContext")
        http = context.get("http") if isinstance(context, Mapping) else None
        if isinstance(http, Mapping):
            method = http.get("method")
    if not method:
        method = mapping.get("method")
    if not isinstance(method, str) or not method.strip():
        return "GET"
    return method.strip()


def _raw_path(mapping: Mapping, headers: Mapping) -> str:
    """rawPath -> path -> gateway URI headers -> "/"."""
    for key in ("rawPath", "path"):
        value = mapping.get(key)
        if isinstance(value, str) and value:
            return value
    for name in PATH_FALLBACK_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return "/"


def split_path(raw: str) -> tuple:
    """
    Resolve a raw path against the synthetic base.

    Returns (path, query_string). Any scheme/host prefix and fragment are
    dropped and the path is percent-decoded. If URL parsing fails the raw
    string is kept as the path (only the query part is cut off).
    """
    try:
        parts = urlsplit(urljoin(_SYNTHETIC_BASE, raw))
        path = unquote(parts.path) or "/"
        return path, parts.query
    except ValueError as e:
        logger.warning("Could not parse request path %r (%s); using it unmodified", raw, e)
        path, _, query = raw.partition("?")
        return path or "/", query


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return str(value[-1]) if value else ""
    return str(value)


def resolve_query(embedded: str, mapping: Mapping) -> Dict[str, str]:
    """Embedded query first, then the dedicated field, which wins on collisions."""
    params: Dict[str, str] = {}
    if embedded:
        params.update(parse_qsl(embedded, keep_blank_values=True))
    for key in ("queryStringParameters", "queryParameters"):
        dedicated = mapping.get(key)
        if isinstance(dedicated, Mapping):
            for name, value in dedicated.items():
                params[str(name)] = _stringify(value)
    return params


def resolve_body(mapping: Mapping, headers: Mapping) -> str:
    """Decode base64 bodies when the envelope says so; missing body becomes ""."""
    body = mapping.get("body")
    if body is None:
        return ""
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body).decode("utf-8", errors="replace")
    elif isinstance(body, (Mapping, list)):
        # Some runtimes pre-parse JSON bodies.
        return json.dumps(body, ensure_ascii=False)
    elif not isinstance(body, str):
        body = str(body)

    encoded = bool(mapping.get("isBase64Encoded")) or headers.get("content-encoding", "").lower() == "base64"
    if not encoded:
        return body
    try:
        return base64.b64decode(body, validate=False).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as e:
        logger.warning("Body flagged as base64 but could not be decoded (%s); passing it through", e)
        return body


# ==============================================================================
# PUBLIC ENTRY POINT
# ==============================================================================

def _select_adapter(event: Any) -> Optional[EventAdapter]:
    for adapter in ADAPTERS:
        if adapter.matches(event):
            return adapter
    return None


def _to_mapping(event: Any) -> Dict[str, Any]:
    adapter = _select_adapter(event)
    if adapter is None:
        logger.warning("Unrecognised event type %s; using defaults", type(event).__name__)
        return {}
    try:
        return adapter.to_mapping(event)
    except Exception as e:
        logger.warning("Event adapter %s failed (%s); using defaults", adapter.name, e)
        return {}


def normalize_event(event: Any) -> CanonicalRequest:
    """
    Convert any supported event into a CanonicalRequest. Never raises.

    Each field is resolved on its own, so a broken body does not lose the path
    and a broken path does not lose the method.
    """
    mapping = _to_mapping(event)

    try:
        headers = _normalize_headers(mapping.get("headers"))
    except Exception as e:
        logger.warning("Could not read headers (%s); using none", e)
        headers = {}

    try:
        method = resolve_method(mapping)
    except Exception as e:
        logger.warning("Could not resolve method (%s); defaulting to GET", e)
        method = "GET"

    try:
        path, embedded_query = split_path(_raw_path(mapping, headers))
    except Exception as e:
        logger.warning("Could not resolve path (%s); defaulting to /", e)
        path, embedded_query = "/", ""

    try:
        query_params = resolve_query(embedded_query, mapping)
    except Exception as e:
        logger.warning("Could not resolve query parameters (%s); using none", e)
        query_params = {}

    try:
        body = resolve_body(mapping, headers)
    except Exception as e:
        logger.warning("Could not resolve body (%s); using empty body", e)
        body = ""

    return CanonicalRequest(
        method=method,
        path=path,
        query_params=query_params,
        headers=headers,
        body=body,
    )
