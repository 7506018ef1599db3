"""
FUNCTION ENTRY POINT
====================

The handler every function runtime calls. The event may be a raw byte buffer
(aliyun event function), an HTTP trigger / API gateway mapping, or a request
object; the normalizer sorts that out.

  event -> normalize_event() -> Dispatcher.dispatch() -> to_event_response()

Settings are loaded on every invocation, so the API key is looked up at request
time and nothing is shared between invocations. The handler never raises; an
unexpected failure still returns a 500 response mapping.

Configure the runtime handler as "chat_gateway.handler.handler"
(main_handler and lambda_handler are aliases for platforms with fixed names).
"""

import logging

from config import (
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_ORIGIN,
    get_log_level,
    load_settings,
)
from chat_gateway.services.dispatcher import Dispatcher
from chat_gateway.services.normalizer import normalize_event

# Function runtimes usually configure the root logger already; basicConfig is then a no-op.
logging.basicConfig(
    level=get_log_level(),
    format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("chat_gateway")

_FALLBACK_RESPONSE = {
    "statusCode": 500,
    "headers": {
        "Access-Control-Allow-Origin": CORS_ALLOW_ORIGIN,
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        "Content-Type": "application/json",
    },
    "body": '{"error": "The AI service is temporarily unavailable."}',
    "isBase64Encoded": False,
}


def handler(event, context=None) -> dict:
    """Handle one invocation and return the API gateway response mapping."""
    try:
        settings = load_settings()
        request = normalize_event(event)
        logger.info(f"Received request: method={request.method}, path={request.path}")
        response = Dispatcher(settings).dispatch(request)
        return response.to_event_response()
    except Exception as e:
        # Settings or dispatcher construction failed; the dispatcher itself never raises.
        logger.error(f"Invocation failed before dispatch completed: {e}", exc_info=True)
        return dict(_FALLBACK_RESPONSE, headers=dict(_FALLBACK_RESPONSE["headers"]))


# Tencent SCF and AWS-style entry names.
main_handler = handler
lambda_handler = handler
