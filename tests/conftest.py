import json

import pytest

from config import Settings

INDEX_HTML = "<!DOCTYPE html>\r\n<html><body><h1>Hello 世界</h1></body></html>\n".encode("utf-8")
LOGO_PNG = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\xff\xfe binary"
APP_JS = b"console.log('terminal ready');\n"


class FakeResponse:
    """Stands in for a streamed requests.Response: status_code, encoding and iter_content()."""

    def __init__(self, status_code=200, payload=None, text=None, chunks=None):
        self.status_code = status_code
        self.encoding = "utf-8"
        self.text = text if text is not None else json.dumps(payload)
        self.chunks = chunks

    def iter_content(self, chunk_size=1):
        if self.chunks is not None:
            yield from self.chunks
            return
        yield self.text.encode("utf-8")


class FakeSession:
    """Records post() calls and whether close() ran; returns or raises as configured."""

    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []
        self.closed = False

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.response

    def close(self):
        self.closed = True


class SessionFactory:
    """Callable session factory that remembers every session it handed out."""

    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.sessions = []

    def __call__(self):
        session = FakeSession(self.response, self.exc)
        self.sessions.append(session)
        return session

    @property
    def call_count(self):
        return sum(len(s.calls) for s in self.sessions)


def chat_completion(content):
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def asset_root(tmp_path):
    root = tmp_path / "public"
    (root / "img").mkdir(parents=True)
    (root / "index.html").write_bytes(INDEX_HTML)
    (root / "img" / "logo.png").write_bytes(LOGO_PNG)
    (root / "app.js").write_bytes(APP_JS)
    # Lives next to the asset root; must never be reachable.
    (tmp_path / "secret.txt").write_text("top secret")
    return root


@pytest.fixture
def settings(asset_root):
    return Settings(
        api_key="test-key",
        system_prompt="You are a test persona.",
        static_dir=asset_root,
        entry_document=asset_root / "index.html",
    )


@pytest.fixture
def gateway_env(monkeypatch, asset_root):
    """Environment for the entry points: temporary asset root and a test key."""
    monkeypatch.setenv("DEEPSEEK_API_KEY", "env-test-key")
    monkeypatch.delenv("AI_API_KEY", raising=False)
    monkeypatch.setenv("STATIC_DIR", str(asset_root))
    monkeypatch.delenv("ENTRY_DOCUMENT", raising=False)
    monkeypatch.delenv("CORS_ALLOW_ORIGIN", raising=False)
    monkeypatch.delenv("AI_API_URL", raising=False)
    monkeypatch.delenv("AI_MODEL", raising=False)
    monkeypatch.delenv("AI_REQUEST_TIMEOUT", raising=False)
    return asset_root
