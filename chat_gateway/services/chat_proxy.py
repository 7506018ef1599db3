"""
CHAT PROXY SERVICE MODULE
=========================

Handles POST /chat: validates the client body, builds one chat-completion
request for the upstream API, sends it once, and maps whatever comes back to
the stable client contract:

  success -> 200 {"reply": "..."}
  failure -> 400 / 500 {"error": "..."}

FLOW:
  1. parse_chat_request(): body must be a JSON object with a non-empty "message".
     Fails fast with 400 before the API key or network is touched.
  2. API key check: missing key -> 500 with a generic message (logged server-side).
  3. build_payload(): exactly two messages, system (persona + recent turns) and user.
  4. _call_upstream(): one streamed POST. REQUEST_TIMEOUT bounds the connect and
     each socket read, and read_body() also enforces it as a total deadline
     measured from before the POST. A fresh requests.Session is opened per call
     and closed on every path, so a timeout never leaks the socket.
  5. map_upstream_response(): status / JSON / error object / choices -> reply or error.

There is no retry: the client sees exactly one upstream attempt.
"""

import json
import logging
import time
from typing import Callable, List, Optional, Union

import requests
from pydantic import ValidationError

from config import Settings
from chat_gateway.models import (
    CanonicalRequest,
    CanonicalResponse,
    ChatMessage,
    ChatRequest,
    ConversationTurn,
    UpstreamChatPayload,
)
from chat_gateway.utils.responses import error_response, json_response

logger = logging.getLogger("chat_gateway")

# Shown to the client for configuration problems; the real cause only goes to the log.
SERVICE_UNAVAILABLE_MESSAGE = "The AI assistant is temporarily unavailable. Please try again later."
NETWORK_ERROR_MESSAGE = "Network error while calling the AI service."
PARSE_ERROR_MESSAGE = "failed to parse upstream response"
SHAPE_ERROR_MESSAGE = "unexpected response shape"


class ChatRequestError(ValueError):
    """Client-correctable problem with the chat body (answered with 400)."""


# ==============================================================================
# REQUEST VALIDATION
# ==============================================================================

def parse_chat_request(body: str, max_message_length: int) -> ChatRequest:
    """
    Parse and validate the raw body. Raises ChatRequestError naming the bad field.
    """
    if not body or not body.strip():
        raise ChatRequestError("Request body is empty.")
    try:
        data = json.loads(body)
    except ValueError:
        raise ChatRequestError("Request body is not valid JSON.")
    if not isinstance(data, dict):
        raise ChatRequestError("Request body must be a JSON object.")

    message = data.get("message")
    if message is None or message == "":
        raise ChatRequestError("'message' field is missing.")
    if not isinstance(message, str):
        raise ChatRequestError("'message' must be a non-empty string.")
    if len(message) > max_message_length:
        raise ChatRequestError(f"'message' must be at most {max_message_length} characters.")

    if data.get("recentConversations") is None:
        data.pop("recentConversations", None)
    try:
        return ChatRequest.model_validate(data)
    except ValidationError as e:
        field = e.errors()[0]["loc"][0] if e.errors() else "body"
        raise ChatRequestError(
            f"'{field}' is invalid: expected a list of {{user, assistant}} objects."
            if field == "recentConversations"
            else f"'{field}' is invalid."
        )


# ==============================================================================
# PROMPT ASSEMBLY
# ==============================================================================

def render_transcript(turns: List[ConversationTurn]) -> str:
    """One line per turn: "turn N: user: ...; assistant: ..." (numbering from 1)."""
    return "\n".join(
        f"turn {i}: user: {turn.user}; assistant: {turn.assistant}"
        for i, turn in enumerate(turns, 1)
    )


def build_system_prompt(settings: Settings, turns: List[ConversationTurn]) -> str:
    """Persona, plus the most recent turns when the client sent any."""
    if not turns:
        return settings.system_prompt
    recent = turns[-settings.max_history_turns:] if settings.max_history_turns > 0 else []
    if not recent:
        return settings.system_prompt
    return f"{settings.system_prompt}\n\n{settings.transcript_header}\n{render_transcript(recent)}"


def build_payload(settings: Settings, chat_request: ChatRequest) -> UpstreamChatPayload:
    """Exactly [system, user]; the user text goes through untouched."""
    return UpstreamChatPayload(
        model=settings.model,
        messages=[
            ChatMessage(
                role="system",
                content=build_system_prompt(settings, chat_request.recent_conversations),
            ),
            ChatMessage(role="user", content=chat_request.message),
        ],
        stream=False,
    )


# ==============================================================================
# RESPONSE MAPPING
# ==============================================================================

def read_body(response: requests.Response, deadline: float) -> str:
    """
    Read a streamed response body, giving up once the monotonic deadline passes.

    The requests timeout bounds each socket read, not the whole body.
    """
    chunks = []
    for chunk in response.iter_content(chunk_size=8192):
        chunks.append(chunk)
        if time.monotonic() > deadline:
            raise requests.exceptions.ReadTimeout("upstream response exceeded the request deadline")
    return b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")


def _upstream_error_message(error: Union[dict, str, object]) -> str:
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
        return json.dumps(error, ensure_ascii=False)
    return str(error)


def extract_reply(data: object) -> Optional[str]:
    """choices[0].message.content, or None when the shape does not match."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    return content if isinstance(content, str) else None


# ==============================================================================
# CHAT PROXY CLASS
# ==============================================================================

class ChatProxy:
    """
    One upstream call per request. session_factory returns a requests.Session
    (or anything with the same post()/close() interface); tests inject fakes.
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: Optional[Callable[[], requests.Session]] = None,
    ):
        self.settings = settings
        self.session_factory = session_factory or requests.Session
        self.cors_headers = settings.cors_headers

    def handle(self, request: CanonicalRequest) -> CanonicalResponse:
        """Validate, call upstream, map the result. Never raises for expected failures."""
        try:
            chat_request = parse_chat_request(request.body, self.settings.max_message_length)
        except ChatRequestError as e:
            logger.warning(f"Rejected chat request: {e}")
            return error_response(self.cors_headers, 400, str(e))

        logger.info(
            f"Chat request received: {len(chat_request.message)} chars, "
            f"{len(chat_request.recent_conversations)} recent turns"
        )

        if not self.settings.api_key:
            logger.error("Upstream API key is not configured (set DEEPSEEK_API_KEY)")
            return error_response(self.cors_headers, 500, SERVICE_UNAVAILABLE_MESSAGE)

        payload = build_payload(self.settings, chat_request)
        return self._call_upstream(payload)

    def _call_upstream(self, payload: UpstreamChatPayload) -> CanonicalResponse:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.api_key}",
        }
        timeout = self.settings.request_timeout
        deadline = time.monotonic() + timeout

        session = self.session_factory()
        try:
            response = session.post(
                self.settings.upstream_url,
                json=payload.model_dump(),
                headers=headers,
                timeout=timeout,
                stream=True,
            )
            text = read_body(response, deadline)
        except requests.exceptions.Timeout:
            logger.error(f"Upstream request timed out after {timeout:g}s")
            return error_response(
                self.cors_headers, 500, f"upstream request timed out after {timeout:g}s"
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error calling upstream: {e}")
            return error_response(self.cors_headers, 500, NETWORK_ERROR_MESSAGE)
        else:
            return self.map_upstream_response(response.status_code, text)
        finally:
            # Closing the session releases the pooled connection on every path.
            session.close()

    def map_upstream_response(self, status_code: int, text: str) -> CanonicalResponse:
        """Turn the upstream status and body into the client contract."""
        logger.info(f"Upstream responded with status {status_code}")

        if status_code != 200:
            logger.error("Upstream error body: %s", text[:500])
            return error_response(
                self.cors_headers, 500, f"API returned status code: {status_code}"
            )

        try:
            data = json.loads(text)
        except ValueError as e:
            logger.error("Failed to parse upstream response: %s", e)
            return error_response(self.cors_headers, 500, PARSE_ERROR_MESSAGE)

        if isinstance(data, dict) and data.get("error"):
            message = _upstream_error_message(data["error"])
            logger.error(f"Upstream returned an error: {message}")
            return error_response(self.cors_headers, 500, message)

        reply = extract_reply(data)
        if reply is None:
            logger.error("Upstream response missing choices[0].message.content")
            return error_response(self.cors_headers, 500, SHAPE_ERROR_MESSAGE)

        logger.info("Upstream reply received successfully")
        return json_response(self.cors_headers, 200, {"reply": reply})
