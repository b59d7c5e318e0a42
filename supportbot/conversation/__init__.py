"""
Conversation engine for SupportBot.

Decides whether, when and with what context to answer:
- Debounced replies per user
- Suppression once a human has answered
- Rolling usage caps
- Idle conversation cleanup
"""

from supportbot.conversation.turns import (
    Attachment,
    UserTurn,
    SystemTurn,
    SystemTurnKind,
    Turn,
    make_preamble,
)
from supportbot.conversation.timer import DebounceTimer
from supportbot.conversation.prompt import PromptBuilder
from supportbot.conversation.models import Conversation, CompletionCallback
from supportbot.conversation.store import ConversationStore
from supportbot.conversation.detector import AnsweredDetector, ReplyOutcome
from supportbot.conversation.usage import UsageTracker
from supportbot.conversation.orchestrator import (
    ResponseOrchestrator,
    ParsedResponse,
    Verdict,
    parse_response,
)
from supportbot.conversation.reaper import StaleConversationReaper
from supportbot.conversation.engine import (
    ConversationEngine,
    InboundMessage,
    IntakeResult,
)

__all__ = [
    # Turns
    "Attachment",
    "UserTurn",
    "SystemTurn",
    "SystemTurnKind",
    "Turn",
    "make_preamble",
    # State
    "DebounceTimer",
    "Conversation",
    "CompletionCallback",
    "ConversationStore",
    # Policy
    "AnsweredDetector",
    "ReplyOutcome",
    "UsageTracker",
    "ResponseOrchestrator",
    "ParsedResponse",
    "Verdict",
    "parse_response",
    "StaleConversationReaper",
    "PromptBuilder",
    # Engine
    "ConversationEngine",
    "InboundMessage",
    "IntakeResult",
]
