"""
CONFIGURATION MODULE
====================

PURPOSE:
  Central place for all gateway settings: the upstream API key, endpoint and
  model name, the static asset folder, CORS origin, timeouts, and the system
  prompt that defines the assistant persona.

WHAT THIS FILE DOES:
  - Loads environment variables from .env (so the API key stays out of code).
  - Defines default paths to public/ (static assets) and public/index.html (entry page).
  - Defines the upstream chat-completion URL, model name and request timeout.
  - Holds the persona prompt template and the transcript header used for recent turns.
  - Exposes load_settings(), which reads the environment at call time and returns
    an explicit Settings object. Nothing else reads os.environ directly.

USAGE:
  from config import load_settings
  settings = load_settings()     # once per invocation
  Dispatcher(settings, ChatProxy(settings), StaticFiles(settings))

  The API key is resolved on every call to load_settings(), so a function
  runtime picks up a newly configured secret without a redeploy. A missing key
  is not a startup failure; the chat route answers 500 until it is set.
"""

import os
import logging
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
# Used to warn about malformed numeric settings (we fall back to the default).
logger = logging.getLogger("chat_gateway")


# -----------------------------------------------------------------------------
# ENVIRONMENT
# -----------------------------------------------------------------------------
# Load environment variables from .env file (if it exists).
# In a function runtime the variables come from the function configuration instead.
load_dotenv()


# -----------------------------------------------------------------------------
# BASE PATH
# -----------------------------------------------------------------------------
BASE_DIR = Path(__file__).parent

# ============================================================================
# STATIC FILES
# ============================================================================
# public/ is the read-only asset root; index.html inside it is the page served at GET /.
# Both can be overridden with STATIC_DIR / ENTRY_DOCUMENT.

STATIC_DIR = BASE_DIR / "public"
ENTRY_DOCUMENT = STATIC_DIR / "index.html"

# ============================================================================
# UPSTREAM API CONFIGURATION
# ============================================================================
# DeepSeek exposes an OpenAI-compatible chat-completion endpoint.
# The key is read from DEEPSEEK_API_KEY; AI_API_KEY is accepted for older deployments.

API_KEY_ENV_NAMES = ("DEEPSEEK_API_KEY", "AI_API_KEY")
UPSTREAM_URL = "https://api.deepseek.com/chat/completions"
DEFAULT_MODEL = "deepseek-chat"

# Seconds to wait on the upstream before giving up. The call is never retried.
REQUEST_TIMEOUT = 30.0

# Routes that trigger the chat proxy on POST. /api/chat is the path the
# Vercel deployment used; an explicit ?action=chat also works (single-route gateways).
CHAT_PATHS = ("/chat", "/api/chat")

# ============================================================================
# REQUEST LIMITS
# ============================================================================
# Maximum conversation turns (user+assistant pairs) rendered into the system prompt.
# Older turns sent by the client are dropped, newest are kept.
MAX_CHAT_HISTORY_TURNS = 20

# Maximum length (characters) for a single user message. ~32K chars keeps the
# prompt well under the model's context limit.
MAX_MESSAGE_LENGTH = 32_000

# ============================================================================
# CORS
# ============================================================================
# "*" lets any page call the gateway. Set CORS_ALLOW_ORIGIN to pin a single
# frontend origin (e.g. a GitHub Pages site).

CORS_ALLOW_ORIGIN = "*"
CORS_ALLOW_METHODS = "POST, GET, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type"

# ============================================================================
# PERSONA CONFIGURATION
# ============================================================================
# The system prompt that defines the assistant's personality and the quick
# commands of the terminal-style frontend it should point users to.
# Assistant and creator names come from ASSISTANT_NAME / ASSISTANT_CREATOR.

ASSISTANT_NAME = (os.getenv("ASSISTANT_NAME", "").strip() or "Shier AI")
ASSISTANT_CREATOR = (os.getenv("ASSISTANT_CREATOR", "").strip() or "Chen Kejin")

_SYSTEM_PROMPT_BASE = """You are an AI assistant named "{assistant_name}", created by {creator_name}. Answer in a friendly, concise and helpful tone.

Important: this interactive terminal website has a few quick commands. When the user asks about a related topic, naturally suggest the matching command so they get a more detailed answer:

Quick commands:
- "hello" - a short greeting and introduction
- "who are you" - a detailed introduction of yourself
- "who is {creator_name}" - background on your creator
- "your skills" - a detailed list of what you can do
- "about this site" - a complete introduction to this website
- "help" - a usage guide
- "quick commands" - show every available quick command
- "bye" - a polite goodbye
- "thanks" - a polite reply

Guidance:
- When the user asks who you are, suggest typing "who are you"
- When the user asks about {creator_name}, suggest "who is {creator_name}"
- When the user asks what the website does, recommend "about this site"
- When the user needs help, recommend "help"
- When the user wants to know your abilities, recommend "your skills"

Blend these suggestions into your answers naturally. Do not sound mechanical and do not explain how the commands are implemented.
"""

SYSTEM_PROMPT = _SYSTEM_PROMPT_BASE.format(
    assistant_name=ASSISTANT_NAME,
    creator_name=ASSISTANT_CREATOR,
)

# Header placed between the persona and the rendered recent turns.
TRANSCRIPT_HEADER = "Recent conversation with this user (oldest first):"


# ============================================================================
# SETTINGS
# ============================================================================

class Settings(BaseModel):
    """
    Explicit configuration handed to the dispatcher, chat proxy and static files.

    Built by load_settings() for each invocation; tests build it directly with
    a temporary asset folder and a fake key.
    """
    api_key: Optional[str] = None
    upstream_url: str = UPSTREAM_URL
    model: str = DEFAULT_MODEL
    request_timeout: float = REQUEST_TIMEOUT
    system_prompt: str = SYSTEM_PROMPT
    transcript_header: str = TRANSCRIPT_HEADER
    max_history_turns: int = MAX_CHAT_HISTORY_TURNS
    max_message_length: int = MAX_MESSAGE_LENGTH
    chat_paths: Tuple[str, ...] = CHAT_PATHS
    cors_allow_origin: str = CORS_ALLOW_ORIGIN
    static_dir: Path = STATIC_DIR
    entry_document: Path = ENTRY_DOCUMENT

    @property
    def cors_headers(self) -> dict:
        """Headers attached to every response."""
        return {
            "Access-Control-Allow-Origin": self.cors_allow_origin,
            "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
            "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        }


def _load_api_key() -> Optional[str]:
    """Return the first non-empty key from API_KEY_ENV_NAMES, or None."""
    for name in API_KEY_ENV_NAMES:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%r, using %s", name, raw, default)
        return default
    return value


def load_settings() -> Settings:
    """
    Read the environment and return a fresh Settings object.

    Called at invocation time (not import time) so the secret is looked up
    for every request. Unset variables keep the defaults defined above.
    """
    static_dir = Path(os.getenv("STATIC_DIR", "").strip() or STATIC_DIR)
    entry_document = os.getenv("ENTRY_DOCUMENT", "").strip()

    return Settings(
        api_key=_load_api_key(),
        upstream_url=os.getenv("AI_API_URL", "").strip() or UPSTREAM_URL,
        model=os.getenv("AI_MODEL", "").strip() or DEFAULT_MODEL,
        request_timeout=_float_env("AI_REQUEST_TIMEOUT", REQUEST_TIMEOUT),
        cors_allow_origin=os.getenv("CORS_ALLOW_ORIGIN", "").strip() or CORS_ALLOW_ORIGIN,
        static_dir=static_dir,
        # Entry page follows STATIC_DIR unless it is configured on its own.
        entry_document=Path(entry_document) if entry_document else static_dir / "index.html",
    )


def get_log_level() -> str:
    """LOG_LEVEL from the environment (default INFO)."""
    return (os.getenv("LOG_LEVEL", "").strip() or "INFO").upper()
