"""
DISPATCHER MODULE
=================

Routes a CanonicalRequest to exactly one handler. The rules form a precedence
table; the first match wins:

  1. OPTIONS (any path)                     -> preflight, 204, empty body
  2. POST /chat (or ?action=chat)           -> chat proxy
  3. GET /                                  -> entry page
  4. GET any other path                     -> static asset (or 404)
  5. anything else                          -> 404 "Not Found"

Method comparison is case-insensitive, path comparison is exact. Because rule 2
checks method and path together before rule 3, a POST to / is never served the
page; it falls through to 404.

select_route() is pure (method + path + query only), so the same request always
takes the same branch. dispatch() runs the branch inside a boundary that turns
any unexpected exception into a 500 instead of crashing the invocation.
"""

import logging
from typing import Optional

from config import Settings
from chat_gateway.models import CanonicalRequest, CanonicalResponse, Route
from chat_gateway.services.chat_proxy import ChatProxy
from chat_gateway.services.static_files import StaticFiles
from chat_gateway.utils.responses import empty_response, error_response, text_response

logger = logging.getLogger("chat_gateway")

INTERNAL_ERROR_MESSAGE = "The AI service is temporarily unavailable."


def select_route(request: CanonicalRequest, chat_paths=("/chat",)) -> Route:
    """Decide which branch handles the request. No side effects."""
    method = request.upper_method
    path = request.path

    if method == "OPTIONS":
        return Route.PREFLIGHT
    # action=chat is a compatibility alias for single-route gateways; POST only.
    if method == "POST" and (path in chat_paths or request.query_params.get("action") == "chat"):
        return Route.CHAT
    if method == "GET":
        return Route.PAGE if path == "/" else Route.ASSET
    return Route.NOT_FOUND


class Dispatcher:
    """Precedence-table router over the chat proxy and static files."""

    def __init__(
        self,
        settings: Settings,
        chat_proxy: Optional[ChatProxy] = None,
        static_files: Optional[StaticFiles] = None,
    ):
        self.settings = settings
        self.chat_proxy = chat_proxy or ChatProxy(settings)
        self.static_files = static_files or StaticFiles(settings)
        self.cors_headers = settings.cors_headers

    def select_route(self, request: CanonicalRequest) -> Route:
        return select_route(request, self.settings.chat_paths)

    def dispatch(self, request: CanonicalRequest) -> CanonicalResponse:
        route = self.select_route(request)
        logger.info(f"{request.method} {request.path} -> {route.value}")

        try:
            if route is Route.PREFLIGHT:
                return empty_response(self.cors_headers, 204)
            if route is Route.CHAT:
                return self.chat_proxy.handle(request)
            if route is Route.PAGE:
                return self.static_files.serve_page()
            if route is Route.ASSET:
                return self.static_files.serve_asset(request.path)
            return text_response(self.cors_headers, 404, "Not Found")
        except Exception as e:
            logger.error(f"Unhandled error while serving {route.value}: {e}", exc_info=True)
            return error_response(self.cors_headers, 500, INTERNAL_ERROR_MESSAGE)
