"""Data models for a single chat turn and the events it streams."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TurnState(str, Enum):
    """Lifecycle of a chat turn.

    ``INIT -> VALIDATING -> STREAMING -> {COMPLETED | TIMED_OUT | ERRORED}``
    """

    INIT = "init"
    VALIDATING = "validating"
    STREAMING = "streaming"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {TurnState.COMPLETED, TurnState.TIMED_OUT, TurnState.ERRORED}
)

_ALLOWED_TRANSITIONS = {
    TurnState.INIT: {TurnState.VALIDATING},
    TurnState.VALIDATING: {TurnState.STREAMING, TurnState.ERRORED},
    TurnState.STREAMING: _TERMINAL_STATES,
}


@dataclass
class ChatTurn:
    """One question/answer exchange.  Never persisted.

    Attributes:
        message: The user's question.
        system_prompt: Persona and formatting instructions.
        context: Biography text the answer must be grounded in.
        user_prompt: Context and question rendered as the user message.
        parts: Content tokens in the order they were relayed.
        response: Full reply once the turn completes.
        state: Current lifecycle state.
        started_at: When the turn was created.
    """

    message: str
    system_prompt: str = ""
    context: str = ""
    user_prompt: str = ""
    parts: list[str] = field(default_factory=list)
    response: str | None = None
    state: TurnState = TurnState.INIT
    started_at: datetime = field(default_factory=datetime.now)

    def advance(self, new_state: TurnState) -> None:
        """Move to ``new_state``.

        Raises:
            RuntimeError: If the transition is not allowed, including any
                attempt to leave a terminal state.
        """
        if new_state not in _ALLOWED_TRANSITIONS.get(self.state, set()):
            raise RuntimeError(
                f"Invalid turn transition: {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def to_api_messages(self) -> list[dict]:
        """Return the message list expected by the chat completions API."""
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": self.user_prompt},
        ]
