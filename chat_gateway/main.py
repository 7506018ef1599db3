"""
CHAT GATEWAY DEVELOPMENT SERVER
===============================

A FastAPI app that runs the exact same pipeline as the deployed function, so
the page, assets and chat route can be tried locally (python run.py).

There are no per-endpoint handlers here. A single catch-all route turns the
incoming request into a gateway-style event (event_from_dev_request), and from
there it is the same normalizer and dispatcher the function uses. The dev
server is just one more event shape.

ENDPOINTS:
  GET  /health            - Whether the API key and entry page are in place (dev server only).
  *    /{path}            - Everything else: preflight, POST /chat, GET /, GET /<asset>, 404.

STARTUP:
  The lifespan function logs where assets are served from and whether an API
  key is configured. A missing key is only a warning; POST /chat answers 500
  until it is set.
"""

from contextlib import asynccontextmanager
import logging
from urllib.parse import quote

from fastapi import FastAPI, Request, Response
from fastapi.concurrency import run_in_threadpool
import uvicorn

from config import get_log_level, load_settings
from chat_gateway.services.dispatcher import Dispatcher
from chat_gateway.services.normalizer import event_from_dev_request, normalize_event


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=get_log_level(),
    format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("chat_gateway")

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


# -------------------------------------------------------------------------
# LIFESPAN (STARTUP / SHUTDOWN)
# -------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log configuration status on startup. Nothing is kept between requests."""
    settings = load_settings()
    logger.info("=" * 60)
    logger.info("Chat gateway dev server - Starting Up...")
    logger.info(f"    - Asset root: {settings.static_dir}")
    logger.info(f"    - Entry page: {'Ready' if settings.entry_document.is_file() else 'MISSING'}")
    logger.info(f"    - Upstream: {settings.upstream_url} ({settings.model})")
    if settings.api_key:
        logger.info("    - API key: Configured")
    else:
        logger.warning("    - API key: NOT SET (POST /chat will answer 500)")
    logger.info("Open http://localhost:8000 in the browser")
    logger.info("=" * 60)

    yield

    logger.info("Chat gateway dev server stopped.")


app = FastAPI(
    title="Chat Gateway",
    description="Local development server for the serverless chat gateway",
    lifespan=lifespan,
)


# =========================================================================
# ENDPOINTS
# =========================================================================

@app.get("/health")
async def health():
    """Configuration readiness; not part of the deployed function's contract."""
    settings = load_settings()
    return {
        "status": "healthy",
        "api_key_configured": bool(settings.api_key),
        "entry_document": settings.entry_document.is_file(),
    }


def _raw_path(request: Request) -> str:
    """The path as sent on the wire; the normalizer does the percent-decoding."""
    raw = request.scope.get("raw_path")
    if not raw:
        return quote(request.url.path)
    return raw.decode("latin-1").partition("?")[0]


@app.api_route("/{full_path:path}", methods=ALL_METHODS)
async def gateway(request: Request) -> Response:
    """Feed the raw request through the normalizer and dispatcher."""
    body = await request.body()
    event = event_from_dev_request(
        method=request.method,
        path=_raw_path(request),
        query_string=request.url.query,
        headers=request.headers,
        body=body,
    )
    canonical_request = normalize_event(event)
    # Fresh settings per request, like a function invocation. The upstream call blocks.
    dispatcher = Dispatcher(load_settings())
    canonical_response = await run_in_threadpool(dispatcher.dispatch, canonical_request)

    return Response(
        content=canonical_response.body_bytes(),
        status_code=canonical_response.status_code,
        headers=canonical_response.headers,
    )


# -------------------------------------------------------------------------
# STANDALONE RUN (python -m chat_gateway.main)
# -------------------------------------------------------------------------
def run():
    """Start the uvicorn server (same as run.py)."""
    uvicorn.run(
        "chat_gateway.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )

if __name__ == "__main__":
    run()
