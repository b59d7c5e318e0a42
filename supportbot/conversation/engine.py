"""
Conversation engine.

Entry point for transports. Wires the store, detector, usage tracker,
orchestrator and reaper together and applies intake policy:

1. Replies are classified (a human answer settles the asker's question)
2. Non-privileged users over their usage cap are turned away
3. Everything else is added to the user's conversation and debounced
"""

import time
from enum import Enum
from typing import Any, Callable, Iterable
from dataclasses import dataclass, field

from loguru import logger

from supportbot.config.schema import SchedulingConfig, UsageConfig
from supportbot.conversation.detector import AnsweredDetector, ReplyOutcome
from supportbot.conversation.models import CompletionCallback, Conversation
from supportbot.conversation.orchestrator import ResponseOrchestrator
from supportbot.conversation.reaper import StaleConversationReaper
from supportbot.conversation.store import ConversationStore
from supportbot.conversation.turns import Attachment, UserTurn
from supportbot.conversation.usage import UsageTracker
from supportbot.conversation.prompt import PromptBuilder
from supportbot.providers.base import LLMProvider


class IntakeResult(str, Enum):
    """What happened to an inbound message."""
    QUEUED = "queued"
    FAST_TRACKED = "fast_tracked"
    ANSWERED_BY_THIRD_PARTY = "answered_by_third_party"
    USAGE_CAP_HIT = "usage_cap_hit"  # First refusal in this window, caller should warn
    USAGE_CAPPED = "usage_capped"  # Already warned, stay quiet
    IGNORED = "ignored"


@dataclass
class InboundMessage:
    """A transport-neutral chat message."""
    message_id: str
    author_id: str
    content: str
    attachments: list[Attachment] = field(default_factory=list)
    reply_to_author_id: str | None = None  # Set when the message is a reply

    @property
    def is_reply(self) -> bool:
        return self.reply_to_author_id is not None


class ConversationEngine:
    """
    Owns all conversation and usage state for one bot.

    Call start() once the event loop is running and stop() on shutdown.
    """

    def __init__(
        self,
        provider: LLMProvider,
        prompt_builder: PromptBuilder | None = None,
        bot_id: str = "",
        scheduling: SchedulingConfig | None = None,
        usage: UsageConfig | None = None,
        model: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        clock: Callable[[], float] = time.time,
    ):
        self.scheduling = scheduling or SchedulingConfig()
        self.usage_config = usage or UsageConfig()

        self.store = ConversationStore(
            on_fire=self._on_fire,
            quiet_period=self.scheduling.quiet_period_seconds,
            fast_track_delay=self.scheduling.fast_track_seconds,
            clock=clock,
        )
        self.usage = UsageTracker(
            cap=self.usage_config.cap,
            window_seconds=self.usage_config.window_seconds,
            clock=clock,
        )
        self.detector = AnsweredDetector(self.store, bot_id=bot_id)
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.orchestrator = ResponseOrchestrator(
            store=self.store,
            provider=provider,
            prompt_builder=self.prompt_builder,
            usage=self.usage,
            strip_classification=self.scheduling.strip_classification,
            remove_on_failure=self.scheduling.remove_on_failure,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        self.reaper = StaleConversationReaper(
            store=self.store,
            usage=self.usage,
            retention_seconds=self.scheduling.retention_seconds,
            interval_seconds=self.scheduling.reaper_interval_seconds,
        )

    @property
    def bot_id(self) -> str:
        return self.detector.bot_id

    @bot_id.setter
    def bot_id(self, value: str) -> None:
        # Transports usually learn their own id only after logging in
        self.detector.bot_id = value

    async def _on_fire(self, conversation: Conversation) -> None:
        await self.orchestrator.handle(conversation)

    async def start(self) -> None:
        """Start background maintenance."""
        await self.reaper.start()

    async def stop(self) -> None:
        """Stop background maintenance and drop all conversations."""
        await self.reaper.stop()
        self.store.clear()
        logger.info("Conversation engine stopped")

    def handle_message(
        self,
        message: InboundMessage,
        on_complete: CompletionCallback | None = None,
        is_privileged: bool = False,
        can_start: bool = True,
    ) -> IntakeResult:
        """
        Natural intake for a message seen in chat.

        Args:
            message: The inbound message.
            on_complete: Delivery callback for the eventual reply.
            is_privileged: Privileged users bypass the usage cap.
            can_start: Whether the author may open a new conversation;
                authors already tracked can always continue theirs.
        """
        respond_immediately = False

        if message.is_reply:
            outcome = self.detector.classify(message.author_id, message.reply_to_author_id)
            if outcome == ReplyOutcome.THIRD_PARTY_ANSWERED:
                return IntakeResult.ANSWERED_BY_THIRD_PARTY
            respond_immediately = outcome == ReplyOutcome.FOLLOW_UP

        if not can_start and not self.store.is_tracked(message.author_id):
            return IntakeResult.IGNORED

        gated = self.check_usage(message.author_id, is_privileged)
        if gated is not None:
            return gated

        turn = UserTurn(
            content=message.content,
            attachments=list(message.attachments),
            message_ids=(message.message_id,),
        )
        return self._enqueue(message.author_id, turn, respond_immediately, on_complete)

    def ask(
        self,
        user_id: str,
        messages: Iterable[InboundMessage],
        on_complete: CompletionCallback | None = None,
        is_privileged: bool = False,
    ) -> IntakeResult:
        """
        Explicit request to answer a user's messages right away.

        The messages are combined into one turn; any pending natural
        question built from them is superseded. `on_complete` is called
        exactly once, even if later messages fold this turn into a newer
        cycle or the question is settled without a reply.
        """
        messages = list(messages)
        if not messages:
            return IntakeResult.IGNORED

        gated = self.check_usage(user_id, is_privileged)
        if gated is not None:
            return gated

        message_ids = tuple(m.message_id for m in messages)
        self.store.invalidate_messages(message_ids)

        turn = UserTurn(
            content="\n".join(m.content for m in messages if m.content.strip()),
            attachments=[a for m in messages for a in m.attachments],
            message_ids=message_ids,
        )
        return self._enqueue(user_id, turn, True, on_complete, must_answer=True)

    def check_usage(self, user_id: str, is_privileged: bool = False) -> IntakeResult | None:
        """
        Usage gate shared by every intake path.

        Returns None when the user may continue, USAGE_CAP_HIT the first time
        they are turned away in a capped window and USAGE_CAPPED afterwards.
        """
        if is_privileged or not self.usage.is_cap_met(user_id):
            return None
        if self.usage.is_cap_informed(user_id):
            return IntakeResult.USAGE_CAPPED

        self.usage.mark_cap_informed(user_id)
        return IntakeResult.USAGE_CAP_HIT

    def _enqueue(
        self,
        user_id: str,
        turn: UserTurn,
        respond_immediately: bool,
        on_complete: CompletionCallback | None,
        must_answer: bool = False,
    ) -> IntakeResult:
        if not turn.content.strip() and not turn.attachments:
            return IntakeResult.IGNORED

        conversation = self.store.upsert_turn(user_id, turn, respond_immediately, on_complete)
        if must_answer and on_complete is not None:
            conversation.waiters.append(on_complete)

        if conversation.fast_tracked:
            return IntakeResult.FAST_TRACKED
        return IntakeResult.QUEUED

    def get_stats(self) -> dict[str, Any]:
        """Get engine statistics."""
        return {
            "store": self.store.get_stats(),
            "usage": self.usage.get_stats(),
            "orchestrator": self.orchestrator.get_stats(),
            "reaped": self.reaper.total_reaped,
            "reaper_running": self.reaper.is_running,
        }
