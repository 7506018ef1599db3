"""
DATA MODELS MODULE
==================

Pydantic models shared by the normalizer, dispatcher and chat proxy. Every
instance lives for a single invocation; nothing here is persisted.

MODELS:
  CanonicalRequest    - Transport-independent request (method, path, query, headers, body).
  CanonicalResponse   - Transport-independent response; to_event_response() maps it to FaaS form.
  ConversationTurn    - One {user, assistant} pair sent by the client as recent history.
  ChatRequest         - Body of POST /chat (message + optional recentConversations).
  ChatMessage         - One message of the upstream payload (system or user).
  UpstreamChatPayload - JSON body sent to the chat-completion API.
  Route               - The dispatcher's branches.
"""

import base64
from enum import Enum
from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ==============================================================================
# CANONICAL REQUEST / RESPONSE
# ==============================================================================

class CanonicalRequest(BaseModel):
    """
    The normalized request every handler works on.

    - method: as received (case preserved); compare with upper_method.
    - path: no query string, percent-decoded, "/" when absent.
    - headers: keys lower-cased.
    - body: raw text, already base64-decoded if the transport flagged it.
    """
    method: str = "GET"
    path: str = "/"
    query_params: Dict[str, str] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    body: str = ""

    @field_validator("path")
    @classmethod
    def _default_root(cls, value: str) -> str:
        return value or "/"

    @property
    def upper_method(self) -> str:
        return self.method.upper()


class CanonicalResponse(BaseModel):
    """
    The normalized response. When is_binary is True, body holds base64 text and
    the transport must decode it before sending.
    """
    status_code: int
    headers: Dict[str, str] = Field(default_factory=dict)
    body: str = ""
    is_binary: bool = False

    def to_event_response(self) -> dict:
        """API gateway / function compute response mapping."""
        return {
            "statusCode": self.status_code,
            "headers": dict(self.headers),
            "body": self.body,
            "isBase64Encoded": self.is_binary,
        }

    def body_bytes(self) -> bytes:
        """Payload as bytes, decoded from base64 for binary responses."""
        if self.is_binary:
            return base64.b64decode(self.body)
        return self.body.encode("utf-8")


# ==============================================================================
# CHAT REQUEST AND UPSTREAM PAYLOAD
# ==============================================================================

class ConversationTurn(BaseModel):
    """One earlier exchange. A missing side renders as an empty string."""
    user: str = ""
    assistant: str = ""

    @field_validator("user", "assistant", mode="before")
    @classmethod
    def _null_side_is_empty(cls, value):
        return "" if value is None else value


class ChatRequest(BaseModel):
    """
    Body of POST /chat.

    - message: required, non-empty.
    - recentConversations: optional ordered list of earlier turns (oldest first).
      The server keeps no history; the client sends what it wants remembered.
    """
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1)
    recent_conversations: List[ConversationTurn] = Field(
        default_factory=list, alias="recentConversations"
    )


class ChatMessage(BaseModel):
    role: Literal["system", "user"]
    content: str


class UpstreamChatPayload(BaseModel):
    """JSON body of the chat-completion call. Always exactly [system, user], never streamed."""
    model: str
    messages: List[ChatMessage]
    stream: bool = False


# ==============================================================================
# ROUTES
# ==============================================================================

class Route(str, Enum):
    PREFLIGHT = "preflight"
    CHAT = "chat"
    PAGE = "page"
    ASSET = "asset"
    NOT_FOUND = "not_found"
