"""
Pytest configuration and fixtures for gemini_kit tests.
"""

import json
import socketserver
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler
from pathlib import Path
from types import SimpleNamespace
from urllib.parse import parse_qs, urlparse

import pytest

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from gemini_kit import AsyncGeminiClient, ClientConfig, GeminiClient, GeminiConfig, ImageConfig
from gemini_kit.core.config import reset_settings
from gemini_kit.telemetry.metrics import MetricsCollector

API_KEY = "test-key"
TEST_MODEL = "gemini-test"
TEST_EMBEDDING_MODEL = "embedding-test"

SAMPLE_MODELS = [
    {
        "name": "models/gemini-2.0-flash",
        "version": "2.0",
        "displayName": "Gemini 2.0 Flash",
        "description": "Fast multimodal model for chat and image understanding",
        "inputTokenLimit": 1048576,
        "outputTokenLimit": 8192,
        "supportedGenerationMethods": ["generateContent", "countTokens"],
        "inputSetting": {"supportMultiModal": True},
        "baseModelId": "gemini-2.0",
    },
    {
        "name": "models/gemini-1.5-pro",
        "displayName": "Gemini 1.5 Pro",
        "description": "Mid-size model for chat",
        "inputTokenLimit": 2097152,
        "outputTokenLimit": 8192,
        "supportedGenerationMethods": ["generateContent", "generateMessage"],
        "baseModelId": "gemini-1.5",
    },
    {
        "name": "models/text-embedding-004",
        "displayName": "Text Embedding 004",
        "description": "Obtain a distributed representation of a text: embedding",
        "inputTokenLimit": 2048,
        "supportedGenerationMethods": ["embedContent"],
    },
]


def text_chunk(text, finish_reason=None, usage=None):
    """Build one streamGenerateContent chunk."""
    candidate = {"content": {"parts": [{"text": text}], "role": "model"}}
    if finish_reason is not None:
        candidate["finishReason"] = finish_reason
    chunk = {"candidates": [candidate]}
    if usage is not None:
        chunk["usageMetadata"] = usage
    return chunk


def fake_vector(text):
    """Deterministic 3-dimensional embedding for ``text``."""
    return [float(len(text)), 1.0, 0.5]


class ThreadedTCPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    allow_reuse_address = True
    daemon_threads = True


class GeminiRequestHandler(BaseHTTPRequestHandler):
    def _json_response(self, data: dict, status: int = 200):
        payload = json.dumps(data).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def _sse_response(self, chunks):
        self.send_response(200)
        self.send_header("Content-Type", "text/event-stream")
        self.end_headers()
        for chunk in chunks:
            self.wfile.write(f"data: {json.dumps(chunk)}\n\n".encode("utf-8"))
            self.wfile.flush()

    def _chunked_sse_response(self, state):
        """Send SSE events as HTTP chunks, then drop, stall or finish."""
        fault = state["stream_fault"]
        chunks = state["stream_chunks"]
        if fault in ("drop", "stall"):
            chunks = chunks[: state["stream_fault_after"]]

        self.protocol_version = "HTTP/1.1"
        self.send_response(200)
        self.send_header("Content-Type", "text/event-stream")
        self.send_header("Transfer-Encoding", "chunked")
        self.send_header("Connection", "close")
        self.end_headers()
        for index, chunk in enumerate(chunks):
            if index and state["stream_chunk_delay"]:
                time.sleep(state["stream_chunk_delay"])
            event = f"data: {json.dumps(chunk)}\n\n".encode("utf-8")
            self.wfile.write(f"{len(event):x}\r\n".encode("ascii") + event + b"\r\n")
            self.wfile.flush()

        if fault == "stall":
            time.sleep(state["stream_stall_seconds"])
        elif fault != "drop":
            self.wfile.write(b"0\r\n\r\n")

    def _route(self):
        parsed = urlparse(self.path)
        query = {key: values[-1] for key, values in parse_qs(parsed.query).items()}
        return parsed.path, query

    def _check_key(self, query) -> bool:
        if query.get("key") == API_KEY:
            return True
        self._json_response(
            {"error": {"code": 401, "message": "API key not valid", "status": "UNAUTHENTICATED"}},
            status=401,
        )
        return False

    def _image_response(self, state, name: str):
        if name not in state["images"]:
            self.send_response(404)
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        data, content_type = state["images"][name]
        self.send_response(200)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _take_failure(self, state, counter: str) -> bool:
        failures = state.get(counter, 0)
        if failures <= 0:
            return False
        state[counter] = failures - 1
        self._json_response(state["failure_body"], status=state["failure_status"])
        return True

    def do_GET(self):
        state = self.server.server_state  # type: ignore[attr-defined]
        path, query = self._route()
        if path.startswith("/images/"):
            self._image_response(state, path[len("/images/") :])
            return
        if not self._check_key(query):
            return
        state.setdefault("get_calls", []).append({"path": path, "query": query})

        if path == "/v1beta/models":
            models = state["models"]
            start = int(query.get("pageToken") or 0)
            size = int(query.get("pageSize") or len(models) or 1)
            end = start + size
            body = {"models": models[start:end]}
            if end < len(models):
                body["nextPageToken"] = str(end)
            self._json_response(body)
            return

        if path.startswith("/v1beta/models/"):
            name = path[len("/v1beta/") :]
            for model in state["models"]:
                if model["name"] == name:
                    self._json_response(model)
                    return
            self._json_response(
                {"error": {"code": 404, "message": f"{name} is not found", "status": "NOT_FOUND"}},
                status=404,
            )
            return

        self._json_response({"error": {"code": 404, "message": "not found"}}, status=404)

    def do_POST(self):
        state = self.server.server_state  # type: ignore[attr-defined]
        path, query = self._route()
        length = int(self.headers.get("Content-Length", "0"))
        raw = self.rfile.read(length) if length else b"{}"
        try:
            payload = json.loads(raw.decode("utf-8"))
        except json.JSONDecodeError:
            payload = {}

        if not self._check_key(query):
            return

        if path.endswith(":generateContent"):
            if self._take_failure(state, "generate_failures"):
                return
            state.setdefault("generate_calls", []).append({"path": path, "payload": payload})
            if state.get("generate_response") is not None:
                self._json_response(state["generate_response"])
                return
            last = payload.get("contents", [{}])[-1].get("parts", [{}])[0].get("text", "")
            self._json_response(
                {
                    "candidates": [
                        {
                            "content": {"parts": [{"text": f"Echo: {last}"}], "role": "model"},
                            "finishReason": "STOP",
                        }
                    ],
                    "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 6, "totalTokenCount": 10},
                }
            )
            return

        if path.endswith(":streamGenerateContent"):
            if self._take_failure(state, "stream_failures"):
                return
            state.setdefault("stream_calls", []).append({"path": path, "query": query, "payload": payload})
            if state["stream_fault"] is not None or state["stream_chunk_delay"]:
                self._chunked_sse_response(state)
                return
            self._sse_response(state["stream_chunks"])
            return

        if path.endswith(":embedContent"):
            if self._take_failure(state, "embed_failures"):
                return
            state.setdefault("embed_calls", []).append({"path": path, "payload": payload})
            text = payload["content"]["parts"][0]["text"]
            self._json_response({"embedding": {"values": fake_vector(text)}})
            return

        if path.endswith(":batchEmbedContents"):
            if self._take_failure(state, "embed_failures"):
                return
            state.setdefault("embed_calls", []).append({"path": path, "payload": payload})
            texts = [item["content"]["parts"][0]["text"] for item in payload["requests"]]
            self._json_response(
                {
                    "embeddings": [{"values": fake_vector(text)} for text in texts],
                    "usageMetadata": {"promptTokenCount": len(texts), "totalTokenCount": len(texts)},
                }
            )
            return

        self._json_response({"error": {"code": 404, "message": "not found"}}, status=404)

    def log_message(self, format, *args):
        # Suppress default HTTP server logging to keep test output clean.
        return


@pytest.fixture
def gemini_server():
    """Start a lightweight HTTP server that mimics the Gemini REST endpoints."""
    state = {
        "models": list(SAMPLE_MODELS),
        "generate_failures": 0,
        "stream_failures": 0,
        "embed_failures": 0,
        "failure_status": 500,
        "failure_body": {"error": {"code": 500, "message": "Internal error", "status": "INTERNAL"}},
        "generate_response": None,
        "images": {},
        "stream_fault": None,
        "stream_fault_after": 1,
        "stream_stall_seconds": 1.0,
        "stream_chunk_delay": 0.0,
        "stream_chunks": [
            text_chunk("Hello"),
            text_chunk(" world"),
            text_chunk(
                "!",
                finish_reason="STOP",
                usage={"promptTokenCount": 3, "candidatesTokenCount": 5, "totalTokenCount": 8},
            ),
        ],
    }

    server = ThreadedTCPServer(("127.0.0.1", 0), GeminiRequestHandler)
    server.server_state = state  # type: ignore[attr-defined]

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    base_url = f"http://127.0.0.1:{server.server_address[1]}"

    try:
        yield SimpleNamespace(base_url=base_url, state=state)
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture
def gemini_config(gemini_server):
    """GeminiConfig pointing at the fake server."""
    return GeminiConfig(
        api_key=API_KEY,
        base_url=gemini_server.base_url,
        default_model=TEST_MODEL,
        default_embedding_model=TEST_EMBEDDING_MODEL,
        timeout=5.0,
        open_timeout=2.0,
        log_requests=False,
    )


@pytest.fixture
def client_config():
    """Client settings with instant retries."""
    return ClientConfig(max_retries=3, retry_delay=0.0, max_batch_size=100)


@pytest.fixture
def client(gemini_config, client_config):
    """GeminiClient talking to the fake server."""
    with GeminiClient(gemini_config, client_config, image_config=ImageConfig()) as gemini_client:
        yield gemini_client


@pytest.fixture
def async_client_factory(gemini_config, client_config):
    """Build AsyncGeminiClient instances bound to the fake server."""

    def factory(**overrides):
        config = gemini_config.model_copy(update=overrides) if overrides else gemini_config
        return AsyncGeminiClient(config, client_config, image_config=ImageConfig())

    return factory


@pytest.fixture
def sample_content_response():
    """Sample generateContent API response."""
    return {
        "candidates": [
            {
                "content": {"parts": [{"text": "Once upon a time"}], "role": "model"},
                "finishReason": "STOP",
                "index": 0,
            }
        ],
        "usageMetadata": {"promptTokenCount": 5, "candidatesTokenCount": 4, "totalTokenCount": 9},
    }


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset cached settings and metrics before and after each test."""
    reset_settings()
    MetricsCollector.reset()

    yield

    reset_settings()
    MetricsCollector.reset()
