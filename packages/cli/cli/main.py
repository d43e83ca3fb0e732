"""Interactive command-line client for the portfolio assistant.

Talks to a running API server and prints answers as they stream in.
"""

import os
import time

import httpx
from dotenv import load_dotenv  # type: ignore

from api.sse import SSEDecoder  # type: ignore

# A little longer than the server's own 60s budget so its timeout event wins.
CLIENT_TIMEOUT_SECONDS = 65.0


class ChatClientError(Exception):
    """The server refused the question or the stream ended with an error."""


def _error_for_status(response: httpx.Response) -> ChatClientError:
    if response.status_code == 429:
        return ChatClientError("Too many requests. Please wait a moment and try again.")
    if response.status_code >= 500:
        return ChatClientError("Server error. Please try again later.")
    return ChatClientError(f"Request failed with status {response.status_code}")


def stream_answer(
    client: httpx.Client,
    message: str,
    on_token=None,
) -> str:
    """Ask ``message`` and return the full answer.

    Args:
        client: HTTP client pointed at the API server.
        message: The question.
        on_token: Optional callback invoked with each token as it arrives.

    Raises:
        ChatClientError: If the server rejects the request or reports an
            error event.
        httpx.TimeoutException: If the server stops responding or the
            answer takes longer than :data:`CLIENT_TIMEOUT_SECONDS`.
    """
    decoder = SSEDecoder()
    parts: list[str] = []
    deadline = time.monotonic() + CLIENT_TIMEOUT_SECONDS

    with client.stream("POST", "/api/chat", json={"message": message}) as response:
        if response.status_code != 200:
            raise _error_for_status(response)

        for chunk in response.iter_text():
            if time.monotonic() > deadline:
                raise httpx.ReadTimeout("Answer did not finish in time")
            for event in decoder.feed(chunk):
                if "error" in event:
                    raise ChatClientError(event["error"])
                if event.get("done"):
                    return "".join(parts)
                content = event.get("content")
                if content:
                    parts.append(content)
                    if on_token:
                        on_token(content)

        for event in decoder.flush():
            if "error" in event:
                raise ChatClientError(event["error"])

    return "".join(parts)


def main():
    """Run the interactive REPL.

    Loads environment configuration, then reads questions until the user
    types 'quit' or 'exit'.  The streaming response is always closed, even
    when the request times out or the server sends an error.
    """
    load_dotenv()

    base_url = os.environ.get("PORTFOLIO_API_URL", "http://localhost:3000")

    print("Portfolio Assistant (type 'quit' or 'exit' to stop)")
    print("-" * 52)

    with httpx.Client(base_url=base_url, timeout=CLIENT_TIMEOUT_SECONDS) as client:
        while True:
            try:
                user_input = input("\nYou: ").strip()
            except (KeyboardInterrupt, EOFError):
                print("\nGoodbye!")
                break

            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit"):
                print("Goodbye!")
                break

            print("\nAssistant: ", end="", flush=True)
            try:
                stream_answer(
                    client,
                    user_input,
                    on_token=lambda token: print(token, end="", flush=True),
                )
                print()
            except httpx.TimeoutException:
                print("\nThe request took too long. Please try again with a shorter question.")
            except ChatClientError as e:
                print(f"\n{e}")
            except httpx.HTTPError:
                print("\nSorry, I'm having trouble connecting to the server. Please try again later.")


if __name__ == "__main__":
    main()
