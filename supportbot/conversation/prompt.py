"""
Prompt building.

Turns a conversation's turns into chat messages for the provider,
inlining image attachments as base64 data URLs.
"""

import base64
import mimetypes
from typing import Any

import httpx
from loguru import logger

from supportbot.conversation.turns import Attachment, Turn, UserTurn, SystemTurn


class PromptBuilder:
    """
    Converts stored turns into provider-ready messages.

    - preamble -> system message
    - user turn -> user message (text plus image parts)
    - bot reply -> assistant message

    Attachments that are not images or cannot be fetched are skipped.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        max_image_bytes: int = 8 * 1024 * 1024,
    ):
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self.max_image_bytes = max_image_bytes

    async def build(self, turns: list[Turn]) -> list[dict[str, Any]]:
        """Build chat messages from turns, oldest first."""
        messages: list[dict[str, Any]] = []

        for turn in turns:
            if isinstance(turn, SystemTurn):
                if not turn.content.strip():
                    continue
                role = "system" if turn.is_preamble else "assistant"
                messages.append({"role": role, "content": turn.content})
            elif isinstance(turn, UserTurn):
                parts = await self._user_parts(turn)
                if parts:
                    messages.append({"role": "user", "content": parts})
            else:
                raise TypeError(f"Unknown turn type: {type(turn).__name__}")

        return messages

    async def _user_parts(self, turn: UserTurn) -> list[dict[str, Any]]:
        parts: list[dict[str, Any]] = []

        for attachment in turn.attachments:
            if not attachment.is_image:
                continue
            data_url = await self.fetch_image(attachment)
            if data_url:
                parts.append({"type": "image_url", "image_url": {"url": data_url}})

        if turn.content.strip():
            parts.append({"type": "text", "text": turn.content})

        return parts

    async def fetch_image(self, attachment: Attachment) -> str | None:
        """Download an image attachment as a data URL, or None on failure."""
        try:
            response = await self._client.get(attachment.url)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch attachment {attachment.filename}: {e}")
            return None

        if response.status_code != 200:
            logger.warning(
                f"Failed to fetch attachment {attachment.filename}: HTTP {response.status_code}"
            )
            return None

        content = response.content
        if len(content) > self.max_image_bytes:
            logger.warning(f"Skipping oversized attachment {attachment.filename}")
            return None

        mime_type = (
            attachment.content_type
            or mimetypes.guess_type(attachment.filename)[0]
            or "application/octet-stream"
        )
        encoded = base64.b64encode(content).decode("ascii")
        return f"data:{mime_type};base64,{encoded}"

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
