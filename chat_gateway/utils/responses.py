"""
RESPONSE BUILDERS
=================

Small constructors for CanonicalResponse so every handler attaches the CORS
headers and the right content type the same way.
"""

import json
from typing import Dict

from chat_gateway.models import CanonicalResponse

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"


def _with_cors(cors_headers: Dict[str, str], content_type: str) -> Dict[str, str]:
    headers = dict(cors_headers)
    headers["Content-Type"] = content_type
    return headers


def json_response(cors_headers: Dict[str, str], status_code: int, payload: dict) -> CanonicalResponse:
    # ensure_ascii=False keeps non-English replies readable on the wire.
    return CanonicalResponse(
        status_code=status_code,
        headers=_with_cors(cors_headers, JSON_CONTENT_TYPE),
        body=json.dumps(payload, ensure_ascii=False),
    )


def error_response(cors_headers: Dict[str, str], status_code: int, message: str) -> CanonicalResponse:
    """The stable client-facing error envelope: {"error": "..."}."""
    return json_response(cors_headers, status_code, {"error": message})


def text_response(
    cors_headers: Dict[str, str],
    status_code: int,
    body: str,
    content_type: str = TEXT_CONTENT_TYPE,
) -> CanonicalResponse:
    return CanonicalResponse(
        status_code=status_code,
        headers=_with_cors(cors_headers, content_type),
        body=body,
    )


def binary_response(cors_headers: Dict[str, str], encoded_body: str, content_type: str) -> CanonicalResponse:
    """200 response whose body is already base64 text."""
    return CanonicalResponse(
        status_code=200,
        headers=_with_cors(cors_headers, content_type),
        body=encoded_body,
        is_binary=True,
    )


def empty_response(cors_headers: Dict[str, str], status_code: int = 204) -> CanonicalResponse:
    return CanonicalResponse(status_code=status_code, headers=dict(cors_headers), body="")
