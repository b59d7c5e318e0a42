"""
Tests for turning conversation turns into provider messages.
"""

import base64

import httpx
import pytest

from supportbot.conversation.prompt import PromptBuilder
from supportbot.conversation.turns import Attachment, UserTurn, SystemTurn, make_preamble


PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


def make_builder(routes: dict[str, httpx.Response]) -> PromptBuilder:
    def handler(request: httpx.Request) -> httpx.Response:
        return routes.get(str(request.url), httpx.Response(404))

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PromptBuilder(client=client)


class TestPromptBuilder:

    @pytest.mark.asyncio
    async def test_roles_follow_turn_order(self):
        builder = make_builder({})
        turns = [
            make_preamble("instructions"),
            UserTurn("question"),
            SystemTurn("answer"),
            UserTurn("follow-up"),
        ]

        messages = await builder.build(turns)

        assert messages == [
            {"role": "system", "content": "instructions"},
            {"role": "user", "content": [{"type": "text", "text": "question"}]},
            {"role": "assistant", "content": "answer"},
            {"role": "user", "content": [{"type": "text", "text": "follow-up"}]},
        ]
        await builder.close()

    @pytest.mark.asyncio
    async def test_images_are_inlined_before_text(self):
        url = "https://cdn.example/screenshot.png"
        builder = make_builder({url: httpx.Response(200, content=PNG_BYTES)})
        turn = UserTurn(
            "see screenshot",
            attachments=[Attachment(url=url, filename="screenshot.png", content_type="image/png")],
        )

        messages = await builder.build([make_preamble(), turn])

        parts = messages[1]["content"]
        expected = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")
        assert parts[0] == {"type": "image_url", "image_url": {"url": expected}}
        assert parts[1] == {"type": "text", "text": "see screenshot"}
        await builder.close()

    @pytest.mark.asyncio
    async def test_unfetchable_and_non_image_attachments_are_skipped(self):
        builder = make_builder({})
        turn = UserTurn(
            "logs attached",
            attachments=[
                Attachment(url="https://cdn.example/missing.png", filename="missing.png", content_type="image/png"),
                Attachment(url="https://cdn.example/log.txt", filename="log.txt", content_type="text/plain"),
            ],
        )

        messages = await builder.build([make_preamble(), turn])

        assert messages[1]["content"] == [{"type": "text", "text": "logs attached"}]
        await builder.close()

    @pytest.mark.asyncio
    async def test_blank_turns_are_dropped(self):
        builder = make_builder({})

        messages = await builder.build([make_preamble(), UserTurn("  "), SystemTurn("")])

        assert [m["role"] for m in messages] == ["system"]
        await builder.close()

    @pytest.mark.asyncio
    async def test_unknown_turn_type_raises(self):
        builder = make_builder({})

        with pytest.raises(TypeError):
            await builder.build(["not a turn"])
        await builder.close()
