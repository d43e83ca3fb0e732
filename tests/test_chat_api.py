"""
Tests for the /api/chat endpoint.

These tests verify:
- Validation order: method, rate limit, message, credential
- SSE framing of streamed replies, including timeout and errors
- JSON replies when streaming is turned off
"""

from fastapi.testclient import TestClient

from api.main import app
from api.sse import SSEDecoder
from chatbot.errors import GENERIC_ERROR_MESSAGE, TIMEOUT_MESSAGE


def _events(body: str) -> list[dict]:
    decoder = SSEDecoder()
    return decoder.feed(body) + decoder.flush()


class TestChatValidation:
    """Test suite for request validation."""

    def test_wrong_method(self, client: TestClient):
        response = client.get("/api/chat")

        assert response.status_code == 405
        assert response.json() == {"error": "Method Not Allowed"}

    def test_missing_message(self, client: TestClient, install_bot):
        """Test that a missing message is a 400 and the provider is not called."""
        _, fake = install_bot()

        response = client.post("/api/chat", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "Message is required and must be a string"}
        assert fake.completions.calls == []

    def test_non_string_message(self, client: TestClient, install_bot):
        _, fake = install_bot()

        response = client.post("/api/chat", json={"message": 123})

        assert response.status_code == 400
        assert fake.completions.calls == []

    def test_malformed_json_is_bad_request(self, client: TestClient):
        response = client.post(
            "/api/chat",
            content="{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert "error" in response.json()

    def test_missing_credential(self, client: TestClient):
        """Test that an unconfigured OpenAI key is reported after validation."""
        assert app.state.bot is None

        response = client.post("/api/chat", json={"message": "hi"})

        assert response.status_code == 500
        assert response.json() == {"error": "OpenAI API key is not configured"}

    def test_message_checked_before_credential(self, client: TestClient):
        response = client.post("/api/chat", json={"message": ""})

        assert response.status_code == 400


class TestChatRateLimit:
    """Test suite for the chat rate limit."""

    def test_sixth_request_is_rejected(self, client: TestClient, install_bot):
        install_bot(chunks=["ok"])
        for _ in range(5):
            assert client.post("/api/chat", json={"message": "hi"}).status_code == 200

        response = client.post("/api/chat", json={"message": "hi"})

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "Too many chat requests, please try again later."
        assert 0 < body["retryAfter"] <= 300
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["Retry-After"] == str(body["retryAfter"])

    def test_rate_limit_checked_before_message(self, client: TestClient, install_bot):
        """Test that even invalid requests count towards the limit."""
        install_bot()
        for _ in range(5):
            client.post("/api/chat", json={})

        response = client.post("/api/chat", json={})

        assert response.status_code == 429

    def test_malformed_json_is_not_counted(self, client: TestClient, install_bot):
        """Test that bodies rejected while parsing never reach the limiter."""
        install_bot(chunks=["ok"])
        for _ in range(6):
            response = client.post(
                "/api/chat",
                content="{not json",
                headers={"Content-Type": "application/json"},
            )
            assert response.status_code == 400

        assert client.post("/api/chat", json={"message": "hi"}).status_code == 200

    def test_limits_are_per_client(self, client: TestClient, install_bot):
        install_bot(chunks=["ok"])
        for _ in range(5):
            client.post("/api/chat", json={"message": "hi"}, headers={"X-Forwarded-For": "1.1.1.1"})

        blocked = client.post("/api/chat", json={"message": "hi"}, headers={"X-Forwarded-For": "1.1.1.1"})
        other = client.post("/api/chat", json={"message": "hi"}, headers={"X-Forwarded-For": "2.2.2.2"})

        assert blocked.status_code == 429
        assert other.status_code == 200


class TestChatStreaming:
    """Test suite for SSE replies."""

    def test_streams_content_then_done(self, client: TestClient, install_bot):
        install_bot(chunks=["Hel", "lo, ", "world"])

        response = client.post("/api/chat", json={"message": "hi"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.text.startswith('data: {"content": "Hel"}\n\n')
        assert _events(response.text) == [
            {"content": "Hel"},
            {"content": "lo, "},
            {"content": "world"},
            {"done": True},
        ]

    def test_timeout_ends_stream(self, client: TestClient, install_bot):
        """Test that the client sees a terminal error and no content after it."""
        install_bot(stream_timeout=0.1, chunks=["Hel", "lo"], delays=[0, 0.5])

        events = _events(client.post("/api/chat", json={"message": "hi"}).text)

        assert events == [{"content": "Hel"}, {"error": TIMEOUT_MESSAGE}]

    def test_upstream_failure_is_an_event(self, client: TestClient, install_bot):
        """Test that errors after headers are sent never become a JSON status."""
        install_bot(error=RuntimeError("connection reset"))

        response = client.post("/api/chat", json={"message": "hi"})

        assert response.status_code == 200
        assert _events(response.text) == [{"error": GENERIC_ERROR_MESSAGE}]

    def test_unexpected_relay_failure_is_an_event(self, client: TestClient, install_bot):
        bot, _ = install_bot(chunks=["a"])

        async def broken(turn):
            yield {"content": "a"}
            raise ValueError("bug")

        bot.stream = broken

        events = _events(client.post("/api/chat", json={"message": "hi"}).text)

        assert events == [{"content": "a"}, {"error": GENERIC_ERROR_MESSAGE}]


class TestChatJson:
    """Test suite for non-streaming replies."""

    def test_returns_response(self, client: TestClient, install_bot):
        install_bot(reply="Ada wrote notes.")

        response = client.post("/api/chat", json={"message": "hi", "stream": False})

        assert response.status_code == 200
        assert response.json() == {"response": "Ada wrote notes."}

    def test_upstream_failure_hides_details(self, client: TestClient, install_bot):
        install_bot(error=RuntimeError("secret internals"))

        response = client.post("/api/chat", json={"message": "hi", "stream": False})

        assert response.status_code == 500
        assert response.json() == {"error": GENERIC_ERROR_MESSAGE}

    def test_details_in_development(self, client: TestClient, install_bot, development_mode):
        install_bot(error=RuntimeError("secret internals"))

        response = client.post("/api/chat", json={"message": "hi", "stream": False})

        assert response.status_code == 500
        assert response.json()["details"] == "secret internals"

    def test_timeout_returns_timeout_message(self, client: TestClient, install_bot):
        """Test that a slow JSON reply reports the timeout, not a generic failure."""
        install_bot(stream_timeout=0.05, reply_delay=0.5)

        response = client.post("/api/chat", json={"message": "hi", "stream": False})

        assert response.status_code == 500
        assert response.json() == {"error": TIMEOUT_MESSAGE}


class TestUnhandledErrors:
    """Test suite for failures outside the relay."""

    def test_unexpected_failure_is_json(self, make_bot):
        """Test that a bug in turn setup still answers with the JSON error shape."""
        bot, _ = make_bot()

        def broken(message):
            raise RuntimeError("tokenizer download failed")

        bot.start_turn = broken

        with TestClient(app, raise_server_exceptions=False) as test_client:
            app.state.bot = bot
            response = test_client.post(
                "/api/chat", json={"message": "hi", "stream": False}
            )

        assert response.status_code == 500
        assert response.json() == {"error": GENERIC_ERROR_MESSAGE}
