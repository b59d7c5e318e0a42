"""
SupportBot - debounced automatic replies for community support chats.
"""

__version__ = "0.1.0"
__logo__ = "🛟"
