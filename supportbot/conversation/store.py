"""
Conversation store.

Single source of truth for per-user conversation state. All mutating
methods are synchronous so that, on one event loop, a turn append and
its timer rearm are observed as a single transition.
"""

import time
from typing import Any, Callable, Awaitable, Iterable, Iterator

from loguru import logger

from supportbot.conversation.models import Conversation, CompletionCallback
from supportbot.conversation.turns import UserTurn, SystemTurn


FireHandler = Callable[[Conversation], Awaitable[None]]


class ConversationStore:
    """
    Map of user id -> Conversation with debounce timer management.
    """

    def __init__(
        self,
        on_fire: FireHandler,
        quiet_period: float = 1200.0,
        fast_track_delay: float = 0.01,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            on_fire: Coroutine function run when a conversation's timer fires.
            quiet_period: Seconds of inactivity before a reply is generated.
            fast_track_delay: Delay used when a reply should be produced right away.
            clock: Time source, seconds since the epoch.
        """
        self.on_fire = on_fire
        self.quiet_period = quiet_period
        self.fast_track_delay = fast_track_delay
        self.clock = clock

        self._conversations: dict[str, Conversation] = {}

        # Stats
        self._total_created = 0
        self._total_removed = 0

    def upsert_turn(
        self,
        user_id: str,
        turn: UserTurn,
        respond_immediately: bool = False,
        on_complete: CompletionCallback | None = None,
    ) -> Conversation:
        """
        Add a user turn, creating the conversation if needed, and rearm its timer.

        Earlier unresolved user turns are folded into the new pending turn.
        Replying right after a bot reply is always fast-tracked.
        """
        conversation = self._conversations.get(user_id)

        if conversation is None:
            conversation = Conversation(user_id=user_id)
            conversation.turns.append(turn)
            self._conversations[user_id] = conversation
            self._total_created += 1
        else:
            for pending in conversation.pending_turns:
                pending.responded = True

            last = conversation.last_turn
            if isinstance(last, SystemTurn) and not last.is_preamble:
                respond_immediately = True

            conversation.turns.append(turn)

        conversation.responded = False
        conversation.cycle += 1
        conversation.fast_tracked = respond_immediately
        conversation.touch(self.clock())
        if on_complete is not None:
            conversation.on_complete = on_complete

        if not conversation.timer.is_wired:
            conversation.timer.wire(lambda: self.on_fire(conversation))

        delay = self.fast_track_delay if respond_immediately else self.quiet_period
        conversation.timer.rearm(delay)

        logger.debug(
            f"Added turn for {user_id} (cycle {conversation.cycle}, "
            f"{conversation.question_count} questions, fires in {delay}s)"
        )
        return conversation

    def remove(self, user_id: str, expected: Conversation | None = None) -> bool:
        """
        Remove a conversation and dispose its timer.

        If `expected` is given, only that exact conversation is removed.

        Returns:
            True if something was removed.
        """
        conversation = self._conversations.get(user_id)
        if conversation is None:
            return False
        if expected is not None and conversation is not expected:
            return False

        del self._conversations[user_id]
        conversation.timer.dispose()
        self._total_removed += 1
        logger.debug(f"Removed conversation for {user_id}")
        return True

    def get(self, user_id: str) -> Conversation | None:
        return self._conversations.get(user_id)

    def is_tracked(self, user_id: str) -> bool:
        return user_id in self._conversations

    def stale(self, cutoff: float) -> list[str]:
        """User ids whose conversations have been idle since before `cutoff`."""
        return [
            user_id for user_id, conversation in self._conversations.items()
            if conversation.last_active < cutoff
        ]

    def invalidate_messages(self, message_ids: Iterable[str]) -> int:
        """
        Mark unresolved user turns built from any of the messages as responded.

        Returns:
            Number of turns invalidated.
        """
        ids = set(message_ids)
        count = 0

        for conversation in self._conversations.values():
            hits = [t for t in conversation.pending_turns if ids.intersection(t.message_ids)]
            for turn in hits:
                turn.responded = True
            if hits:
                count += len(hits)
                logger.debug(f"Invalidated {len(hits)} question(s) from {conversation.user_id}")
                if not conversation.pending_turns:
                    conversation.responded = True

        return count

    def clear(self) -> None:
        """Remove every conversation."""
        for user_id in list(self._conversations):
            self.remove(user_id)

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._conversations

    def __iter__(self) -> Iterator[Conversation]:
        return iter(list(self._conversations.values()))

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        return {
            "tracked": len(self._conversations),
            "pending": sum(1 for c in self._conversations.values() if not c.responded),
            "total_created": self._total_created,
            "total_removed": self._total_removed,
        }
