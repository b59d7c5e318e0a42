"""
Conversation turns.

A turn is either user-authored (UserTurn) or synthesized by the bot
(SystemTurn). Consumers dispatch on the two variants with isinstance
and treat anything else as a TypeError.
"""

from enum import Enum
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Attachment:
    """A file attached to a user message."""
    url: str
    filename: str
    content_type: str = ""

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")


@dataclass
class UserTurn:
    """A user-authored message contributing to the pending question."""
    content: str
    attachments: list[Attachment] = field(default_factory=list)
    message_ids: tuple[str, ...] = ()
    responded: bool = False

    def __str__(self) -> str:
        return self.content


class SystemTurnKind(str, Enum):
    """Origin of a synthesized turn."""
    PREAMBLE = "preamble"
    REPLY = "reply"


@dataclass(frozen=True)
class SystemTurn:
    """The instruction preamble or a prior bot reply kept for context."""
    content: str
    kind: SystemTurnKind = SystemTurnKind.REPLY

    @property
    def is_preamble(self) -> bool:
        return self.kind == SystemTurnKind.PREAMBLE

    def __str__(self) -> str:
        return self.content


Turn = UserTurn | SystemTurn


PREAMBLE_TEXT = (
    "=== SYSTEM TEXT START ===\n"
    "DO YOU THINK THE FOLLOWING IS A SUPPORT QUESTION RELATED TO THIS COMMUNITY'S SOFTWARE? "
    "IF SO, RESPOND WITH 'YES' ON THE FIRST LINE, AND CONTINUE ON THE NEXT LINES WITH ANSWERING "
    "THE QUESTION AS A FRIENDLY ASSISTANT (IF THERE ARE SCREENSHOTS ATTACHED, ANALYSE THEM), "
    "ELSE RESPOND WITH 'NO' AND STOP RESPONDING!\n"
    "CONTEXT: ASSUMING THE QUESTION BELOW IS SUPPORT-RELATED, IT MAY INCLUDE SCREENSHOTS. "
    "IF IT INCLUDES A SCREENSHOT OF THE CLIENT, CHECK THE PEERS, AVAILABILITY, STATUS, ETC. "
    "AND USE THIS TO CONTEXTUALISE YOUR TROUBLESHOOTING.\n"
    "=== SYSTEM TEXT END ==="
)


def make_preamble(text: str = PREAMBLE_TEXT) -> SystemTurn:
    """Create the instruction turn that always opens a conversation."""
    return SystemTurn(content=text, kind=SystemTurnKind.PREAMBLE)
