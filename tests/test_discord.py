"""
Tests for the Discord transport helpers.

These avoid a live gateway: discord objects are stood in for by
SimpleNamespace values and mocks carrying only the attributes the code reads.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from supportbot.channels.discord import (
    CAPPED_NOTICE,
    DiscordChannel,
    is_privileged,
    joined_recently,
    split_message,
    to_inbound,
)
from supportbot.config.schema import DiscordConfig, UsageConfig


NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_member(roles=(), joined_at=NOW):
    everyone = SimpleNamespace(name="@everyone")
    guild = SimpleNamespace(default_role=everyone)
    return SimpleNamespace(guild=guild, roles=[everyone, *roles], joined_at=joined_at)


class TestMemberHelpers:

    def test_default_role_only_is_not_privileged(self):
        assert not is_privileged(make_member())

    def test_any_extra_role_is_privileged(self):
        assert is_privileged(make_member(roles=[SimpleNamespace(name="helper")]))

    def test_joined_recently(self):
        member = make_member(joined_at=NOW - timedelta(minutes=30))

        assert joined_recently(member, timedelta(hours=1), now=NOW)
        assert not joined_recently(member, timedelta(minutes=10), now=NOW)

    def test_unknown_join_date_is_not_recent(self):
        assert not joined_recently(make_member(joined_at=None), timedelta(hours=1), now=NOW)


class TestToInbound:

    def test_converts_ids_and_attachments(self):
        message = SimpleNamespace(
            id=42,
            author=SimpleNamespace(id=7),
            content="it crashes",
            attachments=[
                SimpleNamespace(
                    url="https://cdn.example/a.png",
                    proxy_url="https://media.example/a.png",
                    filename="a.png",
                    content_type="image/png",
                ),
                SimpleNamespace(url="https://cdn.example/b.log", proxy_url="", filename="b.log", content_type=None),
            ],
        )

        inbound = to_inbound(message, reply_to_author_id="9")

        assert inbound.message_id == "42"
        assert inbound.author_id == "7"
        assert inbound.reply_to_author_id == "9"
        assert inbound.is_reply
        assert inbound.attachments[0].url == "https://media.example/a.png"
        assert inbound.attachments[0].is_image
        assert inbound.attachments[1].url == "https://cdn.example/b.log"
        assert inbound.attachments[1].content_type == ""


class TestSplitMessage:

    def test_short_text_is_one_chunk(self):
        assert split_message("hello") == ["hello"]

    def test_empty_text_has_no_chunks(self):
        assert split_message("") == []

    def test_prefers_line_breaks(self):
        text = "a" * 8 + "\n" + "b" * 8

        assert split_message(text, limit=10) == ["a" * 8, "b" * 8]

    def test_hard_split_without_line_breaks(self):
        chunks = split_message("x" * 25, limit=10)

        assert chunks == ["x" * 10, "x" * 10, "x" * 5]


def make_interaction():
    return SimpleNamespace(
        response=SimpleNamespace(send_message=AsyncMock(), defer=AsyncMock()),
        followup=SimpleNamespace(send=AsyncMock()),
    )


class TestAskCommand:

    @pytest.mark.asyncio
    async def test_capped_author_gets_full_warning_once(self, make_engine):
        engine = make_engine()
        for _ in range(10):
            engine.usage.record_completion("7")
        usage = UsageConfig()
        channel = DiscordChannel(DiscordConfig(), engine, usage)

        author = MagicMock(spec=discord.Member)
        author.id = 7
        author.name = "newbie"
        author.guild = SimpleNamespace(default_role="everyone")
        author.roles = ["everyone"]
        message = SimpleNamespace(author=author, content="still stuck")

        first, second = make_interaction(), make_interaction()
        await channel._ask(first, message)
        await channel._ask(second, message)

        first.response.send_message.assert_awaited_once_with(usage.warning_message, ephemeral=True)
        second.response.send_message.assert_awaited_once_with(CAPPED_NOTICE, ephemeral=True)
        first.response.defer.assert_not_awaited()
        assert not engine.store.is_tracked("7")
