"""
STATIC FILES SERVICE MODULE
===========================

Serves the single HTML entry page (GET /) and the files under the asset root
(GET /<anything else>). Both are read-only and read fresh on every request.

PATH SAFETY:
  The requested path is normalized, leading ".." segments are stripped, and the
  resolved file must still sit inside the resolved asset root (symlinks
  included). Anything else is answered like a missing file: 404 naming only the
  requested path, never the filesystem location.
"""

import base64
import logging
import mimetypes
import posixpath
from pathlib import Path
from typing import Optional

from config import Settings
from chat_gateway.models import CanonicalResponse
from chat_gateway.utils.responses import (
    HTML_CONTENT_TYPE,
    binary_response,
    text_response,
)

logger = logging.getLogger("chat_gateway")

# Extensions the frontend actually ships; mimetypes covers the rest.
CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".ico": "image/x-icon",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
    ".html": "text/html",
    ".txt": "text/plain",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Non-text/* types that are still sent as text.
_TEXTUAL_TYPES = {
    "application/javascript",
    "application/json",
    "application/xml",
    "image/svg+xml",
}


def get_content_type(file_path: Path) -> str:
    """MIME type from the file extension (case-insensitive)."""
    ext = file_path.suffix.lower()
    if ext in CONTENT_TYPES:
        return CONTENT_TYPES[ext]
    guessed, _ = mimetypes.guess_type(file_path.name)
    return guessed or DEFAULT_CONTENT_TYPE


def is_textual(content_type: str) -> bool:
    return content_type.startswith("text/") or content_type in _TEXTUAL_TYPES


def safe_relative_path(request_path: str) -> str:
    """
    Normalize a request path into a relative path with no leading "..".

    "/img/../logo.png" -> "logo.png", "/../../etc/passwd" -> "etc/passwd".
    """
    cleaned = request_path.replace("\\", "/").lstrip("/")
    normalized = posixpath.normpath("/" + cleaned)
    parts = [part for part in normalized.split("/") if part and part != "."]
    while parts and parts[0] == "..":
        parts.pop(0)
    return "/".join(parts)


class StaticFiles:
    """Entry page and asset handler bound to one Settings object."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.cors_headers = settings.cors_headers

    # ------------------------------------------------------------------------------
    # ENTRY PAGE
    # ------------------------------------------------------------------------------

    def serve_page(self) -> CanonicalResponse:
        """Return the entry document verbatim. Bytes are decoded, never rewritten."""
        try:
            html = self.settings.entry_document.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Could not read entry document %s: %s", self.settings.entry_document, e)
            return text_response(
                self.cors_headers, 500, "Internal server error: unable to read the home page."
            )
        logger.info("Serving entry page")
        return text_response(self.cors_headers, 200, html, content_type=HTML_CONTENT_TYPE)

    # ------------------------------------------------------------------------------
    # ASSETS
    # ------------------------------------------------------------------------------

    def resolve_asset(self, request_path: str) -> Optional[Path]:
        """
        Map a request path to a file inside the asset root, or None when the
        path escapes the root, does not exist, or is not a regular file.
        """
        relative = safe_relative_path(request_path)
        if not relative:
            return None

        root = self.settings.static_dir.resolve()
        try:
            candidate = (root / relative).resolve()
            candidate.relative_to(root)
        except (OSError, ValueError):
            logger.warning("Rejected asset path outside the asset root or unusable: %r", request_path)
            return None
        if not candidate.is_file():
            return None
        return candidate

    def serve_asset(self, request_path: str) -> CanonicalResponse:
        """Serve one asset; text types as text, everything else base64 with is_binary."""
        file_path = self.resolve_asset(request_path)
        if file_path is None:
            logger.warning(f"Static asset not found: {request_path}")
            return text_response(self.cors_headers, 404, f"Asset Not Found: {request_path}")

        content_type = get_content_type(file_path)
        try:
            content = file_path.read_bytes()
        except OSError as e:
            logger.error("Failed to read static asset %s: %s", file_path, e)
            return text_response(self.cors_headers, 500, "Error reading asset")

        logger.info(f"Serving static asset {request_path} as {content_type}")
        if is_textual(content_type):
            try:
                text = content.decode("utf-8")
            except UnicodeDecodeError:
                # Mislabelled file; fall through to binary so the bytes survive.
                pass
            else:
                return text_response(
                    self.cors_headers, 200, text, content_type=f"{content_type}; charset=utf-8"
                )
        return binary_response(
            self.cors_headers, base64.b64encode(content).decode("ascii"), content_type
        )
