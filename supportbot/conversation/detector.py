"""
Answered-detector.

Classifies reply-type messages so that a human answering someone's
question suppresses the automatic reply, and a user replying to the
bot gets a fast follow-up.
"""

from enum import Enum

from loguru import logger

from supportbot.conversation.store import ConversationStore


class ReplyOutcome(str, Enum):
    """How a reply-type message relates to tracked conversations."""
    SELF_REPLY = "self_reply"
    FOLLOW_UP = "follow_up"
    NO_EXCHANGE = "no_exchange"
    THIRD_PARTY_ANSWERED = "third_party_answered"
    UNRELATED = "unrelated"


class AnsweredDetector:
    """
    Decides what a reply means for the conversation store.

    Only THIRD_PARTY_ANSWERED consumes the message; every other outcome
    leaves it to normal intake (FOLLOW_UP additionally fast-tracks it).
    """

    def __init__(self, store: ConversationStore, bot_id: str = ""):
        self.store = store
        self.bot_id = bot_id

    def classify(self, author_id: str, referenced_author_id: str) -> ReplyOutcome:
        """
        Classify a reply and apply its side effects.

        Args:
            author_id: Author of the new message.
            referenced_author_id: Author of the message being replied to.
        """
        if referenced_author_id == author_id:
            return ReplyOutcome.SELF_REPLY

        if self.bot_id and referenced_author_id == self.bot_id:
            conversation = self.store.get(author_id)
            if conversation is None:
                return ReplyOutcome.NO_EXCHANGE
            if conversation.responded:
                return ReplyOutcome.FOLLOW_UP
            return ReplyOutcome.UNRELATED

        # Only an unanswered question can be answered by someone else
        conversation = self.store.get(referenced_author_id)
        if conversation is not None and not conversation.responded:
            conversation.mark_answered()
            logger.info(
                f"Marking {referenced_author_id}'s question as answered by {author_id}"
            )
            return ReplyOutcome.THIRD_PARTY_ANSWERED

        return ReplyOutcome.UNRELATED
