"""Chat relay between the portfolio UI and the OpenAI chat completions API.

A turn is answered either in one piece (:meth:`ChatBot.complete`) or as an
ordered stream of events (:meth:`ChatBot.stream`) that the API layer frames
as Server-Sent Events.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator

import tiktoken  # type: ignore
from openai import AsyncOpenAI  # type: ignore

from chatbot.ContextLoader import ContextLoader
from chatbot.errors import (
    TIMEOUT_MESSAGE,
    ConfigurationError,
    InvalidMessageError,
    RelayTimeoutError,
    UpstreamError,
)
from chatbot.models import ChatTurn, TurnState
from chatbot.prompts import (
    EMPTY_COMPLETION_REPLY,
    get_system_prompt,
    get_user_prompt,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_TOKENS = 800
DEFAULT_TEMPERATURE = 0.3
DEFAULT_STREAM_TIMEOUT = 60.0

# Biography budget; the system prompt and reply fit comfortably in the rest
# of gpt-4o-mini's 128k window.
MAX_CONTEXT_TOKENS = 16_000

# Upstream tokens waiting to be written to the client.
_QUEUE_SIZE = 64


def validate_message(message: object) -> str:
    """Return ``message`` if it is a non-blank string.

    Raises:
        InvalidMessageError: If the message is missing, not a string, or
            whitespace-only.
    """
    if not isinstance(message, str) or not message.strip():
        raise InvalidMessageError("Message is required and must be a string")
    return message


class ChatBot:
    """Answers questions about the portfolio owner from a cached biography."""

    def __init__(
        self,
        context_loader: ContextLoader,
        api_key: str | None,
        *,
        owner_name: str,
        resume_url: str,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        stream_timeout: float = DEFAULT_STREAM_TIMEOUT,
        expose_details: bool = False,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the relay.

        Args:
            context_loader: Source of the biography text.
            api_key: OpenAI API key.  May be omitted when ``client`` is given.
            owner_name: Person the assistant speaks about.
            resume_url: Link the assistant returns when asked for a résumé.
            model: Chat completions model name.
            max_tokens: Upper bound on reply length.
            temperature: Sampling temperature; kept low for faithfulness.
            stream_timeout: Wall-clock budget for one turn, in seconds.
            expose_details: Attach technical error details to error events.
            client: Pre-built async client, mainly for tests.

        Raises:
            ConfigurationError: If neither ``api_key`` nor ``client`` is set.
        """
        if client is None and not api_key:
            raise ConfigurationError("OpenAI API key is not configured")

        self._context_loader = context_loader
        self._client = client or AsyncOpenAI(api_key=api_key)
        self._owner_name = owner_name
        self._resume_url = resume_url
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._stream_timeout = stream_timeout
        self._expose_details = expose_details
        self._encoding: tiktoken.Encoding | None = None

    def warm_up(self) -> None:
        """Load the tokenizer ahead of the first oversized context.

        The encoding may be downloaded on first use, so call this from a
        worker thread at startup rather than on the event loop.
        """
        self._get_encoding()

    def start_turn(self, message: str) -> ChatTurn:
        """Assemble the prompt for a new turn.

        ``message`` must already have passed :func:`validate_message`.
        """
        turn = ChatTurn(message=message)
        turn.advance(TurnState.VALIDATING)

        turn.context = self._trim_context(self._context_loader.get())
        turn.system_prompt = get_system_prompt(self._owner_name, self._resume_url)
        turn.user_prompt = get_user_prompt(turn.context, turn.message)
        return turn

    async def complete(self, turn: ChatTurn) -> str:
        """Request the whole reply in one call.

        Raises:
            RelayTimeoutError: If the call exceeds the wall-clock budget.
            UpstreamError: If the completion service fails.
        """
        turn.advance(TurnState.STREAMING)
        try:
            completion = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=turn.to_api_messages(),
                    max_tokens=self._max_tokens,
                    temperature=self._temperature,
                ),
                timeout=self._stream_timeout,
            )
        except asyncio.TimeoutError as e:
            turn.advance(TurnState.TIMED_OUT)
            logger.warning("Chat completion exceeded %.0fs", self._stream_timeout)
            raise RelayTimeoutError(TIMEOUT_MESSAGE) from e
        except Exception as e:  # noqa: BLE001
            turn.advance(TurnState.ERRORED)
            logger.error("Error in chat completion: %s", e)
            raise UpstreamError(e) from e

        content = None
        if completion.choices:
            content = completion.choices[0].message.content

        turn.response = content or EMPTY_COMPLETION_REPLY
        turn.advance(TurnState.COMPLETED)
        return turn.response

    async def stream(self, turn: ChatTurn) -> AsyncGenerator[dict, None]:
        """Relay the reply token by token.

        Yields, in order:
            - ``{"content": str}`` for each token, as received upstream
            - exactly one terminal event: ``{"done": True}`` or
              ``{"error": str}`` (plus ``details`` when enabled)

        Once the wall-clock budget is spent the timeout error is the last
        event; tokens arriving afterwards are discarded.
        """
        turn.advance(TurnState.STREAMING)
        queue: asyncio.Queue[tuple[str, object]] = asyncio.Queue(maxsize=_QUEUE_SIZE)
        producer = asyncio.create_task(self._pump(turn, queue))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._stream_timeout

        try:
            while True:
                remaining = deadline - loop.time()
                try:
                    if remaining <= 0:
                        raise asyncio.TimeoutError
                    kind, payload = await asyncio.wait_for(queue.get(), remaining)
                except asyncio.TimeoutError:
                    turn.advance(TurnState.TIMED_OUT)
                    logger.warning(
                        "Streaming turn exceeded %.0fs after %d tokens",
                        self._stream_timeout,
                        len(turn.parts),
                    )
                    yield {"error": TIMEOUT_MESSAGE}
                    return

                if kind == "token":
                    turn.parts.append(payload)
                    yield {"content": payload}
                elif kind == "done":
                    turn.response = "".join(turn.parts)
                    turn.advance(TurnState.COMPLETED)
                    yield {"done": True}
                    return
                else:
                    error = UpstreamError(payload)
                    turn.advance(TurnState.ERRORED)
                    logger.error("Error in streaming (%s): %s", error.kind.value, error.detail)
                    yield self.error_event(error.user_message, error.detail)
                    return
        finally:
            # The upstream call is abandoned; anything it still sends is dropped.
            producer.cancel()
            if not turn.state.is_terminal:
                turn.advance(TurnState.ERRORED)
            with contextlib.suppress(asyncio.CancelledError):
                await producer

    def error_event(self, message: str, detail: str | None = None) -> dict:
        """Build a terminal error event, attaching ``detail`` when enabled."""
        event: dict = {"error": message}
        if self._expose_details and detail:
            event["details"] = detail
        return event

    async def _pump(
        self, turn: ChatTurn, queue: "asyncio.Queue[tuple[str, object]]"
    ) -> None:
        """Push upstream tokens into ``queue``, ending with done or error."""
        try:
            stream = await self._client.chat.completions.create(
                model=self._model,
                messages=turn.to_api_messages(),
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                stream=True,
            )
            # Closing the stream releases the upstream connection, also on cancel.
            async with stream:
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    content = chunk.choices[0].delta.content
                    if content:
                        await queue.put(("token", content))
            await queue.put(("done", None))
        except Exception as e:  # noqa: BLE001
            await queue.put(("error", e))

    def _trim_context(self, context: str) -> str:
        """Cut the biography down to :data:`MAX_CONTEXT_TOKENS`."""
        # A token is at least one character, so short texts need no encoding.
        if len(context) <= MAX_CONTEXT_TOKENS:
            return context

        encoding = self._get_encoding()
        tokens = encoding.encode(context)
        if len(tokens) <= MAX_CONTEXT_TOKENS:
            return context

        logger.warning(
            "Context is %d tokens, trimming to %d", len(tokens), MAX_CONTEXT_TOKENS
        )
        return encoding.decode(tokens[:MAX_CONTEXT_TOKENS])

    def _get_encoding(self) -> tiktoken.Encoding:
        if self._encoding is None:
            try:
                self._encoding = tiktoken.encoding_for_model(self._model)
            except KeyError:
                self._encoding = tiktoken.get_encoding("o200k_base")
        return self._encoding

