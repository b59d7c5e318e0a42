"""Conversation state tracked per user."""

import time
from typing import Callable, Awaitable
from dataclasses import dataclass, field

from supportbot.conversation.timer import DebounceTimer
from supportbot.conversation.turns import Turn, UserTurn, SystemTurn, make_preamble


# Delivery callback: (success, text)
CompletionCallback = Callable[[bool, str], Awaitable[None]]


@dataclass
class Conversation:
    """
    One user's pending question and its follow-up context.

    turns[0] is always the preamble.
    """
    user_id: str
    turns: list[Turn] = field(default_factory=lambda: [make_preamble()])
    last_active: float = field(default_factory=time.time)
    responded: bool = True
    on_complete: CompletionCallback | None = None
    # Callbacks that must hear the outcome of whichever cycle answers their turns
    waiters: list[CompletionCallback] = field(default_factory=list)
    cycle: int = 0
    fast_tracked: bool = False  # Whether the current cycle skips the quiet period
    timer: DebounceTimer = field(default_factory=DebounceTimer)

    def __post_init__(self) -> None:
        if not self.timer.name:
            self.timer.name = self.user_id

    @property
    def last_turn(self) -> Turn:
        return self.turns[-1]

    @property
    def user_turns(self) -> list[UserTurn]:
        return [t for t in self.turns if isinstance(t, UserTurn)]

    @property
    def question_count(self) -> int:
        """Number of user turns (the preamble is never counted)."""
        return len(self.user_turns)

    @property
    def pending_turns(self) -> list[UserTurn]:
        return [t for t in self.user_turns if not t.responded]

    def touch(self, now: float | None = None) -> None:
        """Update last activity time."""
        self.last_active = now if now is not None else time.time()

    def mark_answered(self) -> None:
        """Settle the conversation without a bot reply. Safe to repeat."""
        for turn in self.pending_turns:
            turn.responded = True
        self.responded = True

    def append_reply(self, text: str) -> None:
        """Keep a delivered bot reply as context for follow-ups."""
        self.turns.append(SystemTurn(content=text))

    def get_info(self) -> dict:
        """Summary for logging and stats."""
        return {
            "user_id": self.user_id,
            "turns": len(self.turns),
            "questions": self.question_count,
            "responded": self.responded,
            "cycle": self.cycle,
            "timer_pending": self.timer.is_pending,
            "last_active": self.last_active,
        }
