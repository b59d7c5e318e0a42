"""
Response orchestrator.

Runs when a conversation's debounce timer fires: builds the prompt,
asks the provider for a reply, validates it and settles the
conversation.
"""

import re
from enum import Enum
from typing import Any
from dataclasses import dataclass

from loguru import logger

from supportbot.conversation.models import Conversation
from supportbot.conversation.store import ConversationStore
from supportbot.conversation.turns import UserTurn
from supportbot.conversation.usage import UsageTracker
from supportbot.conversation.prompt import PromptBuilder
from supportbot.providers.base import LLMProvider


OFF_TOPIC_TOKEN = "NO"

_LINE_SPLIT = re.compile(r"\r\n|\n")
_BLANK_RUNS = re.compile(r"\n{3,}")


class Verdict(str, Enum):
    """Outcome of validating a raw provider response."""
    ACCEPTED = "accepted"
    EMPTY = "empty"
    OFF_TOPIC = "off_topic"
    MALFORMED = "malformed"


@dataclass
class ParsedResponse:
    """A validated provider response."""
    verdict: Verdict
    text: str = ""

    @property
    def accepted(self) -> bool:
        return self.verdict == Verdict.ACCEPTED


def parse_response(raw: str | None, strip_classification: bool = True) -> ParsedResponse:
    """
    Validate a response of the form "<YES|NO>\\n<answer...>".

    Args:
        raw: Text returned by the provider.
        strip_classification: Drop the first (yes/no) line from the reply text.
    """
    if raw is None or not raw.strip():
        return ParsedResponse(Verdict.EMPTY)

    lines = _LINE_SPLIT.split(raw.strip())
    if OFF_TOPIC_TOKEN in lines[0]:
        return ParsedResponse(Verdict.OFF_TOPIC)
    if len(lines) < 2:
        return ParsedResponse(Verdict.MALFORMED)

    body = "\n".join(lines[1:] if strip_classification else lines)
    text = _BLANK_RUNS.sub("\n\n", body).strip()
    if not text:
        return ParsedResponse(Verdict.MALFORMED)

    return ParsedResponse(Verdict.ACCEPTED, text)


class ResponseOrchestrator:
    """
    Produces at most one reply per pending cycle of a conversation.

    Whatever happens, the orchestrated cycle ends with the conversation
    marked responded, unless a newer cycle has started meanwhile.
    """

    def __init__(
        self,
        store: ConversationStore,
        provider: LLMProvider,
        prompt_builder: PromptBuilder,
        usage: UsageTracker,
        strip_classification: bool = True,
        remove_on_failure: bool = True,
        model: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ):
        self.store = store
        self.provider = provider
        self.prompt_builder = prompt_builder
        self.usage = usage
        self.strip_classification = strip_classification
        self.remove_on_failure = remove_on_failure
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

        # Stats
        self._fired = 0
        self._delivered = 0
        self._discarded = 0
        self._suppressed = 0
        self._errors = 0

    async def handle(self, conversation: Conversation) -> None:
        """Timer fire entry point."""
        self._fired += 1
        user_id = conversation.user_id

        if not isinstance(conversation.last_turn, UserTurn) or conversation.responded:
            logger.debug(f"Nothing to answer for {user_id}")
            self._suppressed += 1
            await self._release_waiters(conversation)
            return
        if conversation.timer.is_pending:
            # A newer fire will pick up the latest turns
            return

        cycle = conversation.cycle
        logger.debug(f"Handling question by {user_id} (cycle {cycle})")

        try:
            messages = await self.prompt_builder.build(list(conversation.turns))
            raw = await self._generate(messages)

            if self._is_cancelled(conversation, cycle):
                logger.info(f"Question by {user_id} was settled meanwhile, discarding reply")
                self._suppressed += 1
                if not self._is_superseded(conversation, cycle):
                    await self._release_waiters(conversation)
                return

            parsed = parse_response(raw, self.strip_classification)
            if not parsed.accepted:
                logger.warning(
                    f"Discarding question by {user_id} ({parsed.verdict.value}). Response: {raw!r}"
                )
                self._discarded += 1
                self._discard(conversation)
                await self._deliver(conversation, False, "")
                return

            for turn in conversation.pending_turns:
                turn.responded = True
            conversation.append_reply(parsed.text)
            self.usage.record_completion(user_id)
            self._delivered += 1

            logger.debug(f"Sending reply to {user_id}")
            await self._deliver(conversation, True, parsed.text)

        except Exception as e:
            self._errors += 1
            logger.error(f"Exception while answering {user_id}: {e}")

        finally:
            if conversation.cycle == cycle:
                conversation.responded = True

    async def _generate(self, messages: list[dict[str, Any]]) -> str | None:
        """Call the provider; any failure reads as an empty response."""
        try:
            response = await self.provider.generate(
                messages,
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.error(f"Text generation failed: {e}")
            return None

        if response.is_error:
            logger.error(f"Text generation failed: {response.content}")
            return None
        return response.content

    def _is_cancelled(self, conversation: Conversation, cycle: int) -> bool:
        return (
            conversation.responded
            or conversation.cycle != cycle
            or self.store.get(conversation.user_id) is not conversation
        )

    def _is_superseded(self, conversation: Conversation, cycle: int) -> bool:
        """A newer cycle of the same tracked conversation will answer its turns."""
        return conversation.cycle != cycle and self.store.get(conversation.user_id) is conversation

    def _discard(self, conversation: Conversation) -> None:
        if self.remove_on_failure:
            self.store.remove(conversation.user_id, expected=conversation)
        else:
            conversation.mark_answered()

    async def _release_waiters(self, conversation: Conversation) -> None:
        """Tell explicit requests their question was settled without a reply."""
        if conversation.waiters:
            logger.debug(f"Releasing {len(conversation.waiters)} request(s) from {conversation.user_id}")
            await self._deliver(conversation, False, "")

    async def _deliver(self, conversation: Conversation, success: bool, text: str) -> None:
        """
        Invoke the completion callbacks; delivery faults are logged only.

        Waiting explicit requests take the outcome in place of the latest
        natural callback and are resolved once.
        """
        waiters, conversation.waiters = conversation.waiters, []
        for callback in waiters or [conversation.on_complete]:
            if callback is None:
                continue
            try:
                await callback(success, text)
            except Exception as e:
                logger.error(f"Failed to deliver reply to {conversation.user_id}: {e}")

    def get_stats(self) -> dict[str, Any]:
        """Get orchestrator statistics."""
        return {
            "fired": self._fired,
            "delivered": self._delivered,
            "discarded": self._discarded,
            "suppressed": self._suppressed,
            "errors": self._errors,
        }
