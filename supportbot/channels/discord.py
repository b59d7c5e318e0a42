"""
Discord channel integration for SupportBot.

Uses discord.py for:
- Watching new members' questions and answering after a quiet period
- Noticing when someone else answers first
- An "Ask SupportBot" message command for immediate answers
"""

from datetime import datetime, timedelta, timezone

import discord
from discord import app_commands
from loguru import logger

from supportbot.config.schema import DiscordConfig, UsageConfig
from supportbot.conversation.engine import ConversationEngine, InboundMessage, IntakeResult
from supportbot.conversation.turns import Attachment


DISCORD_MESSAGE_LIMIT = 2000

# Short reply for users who were already shown the full usage warning
CAPPED_NOTICE = "You have reached your usage limit for now."


def is_privileged(member: discord.Member) -> bool:
    """Members holding any role besides @everyone bypass the usage cap."""
    default_role = member.guild.default_role
    return any(role != default_role for role in member.roles)


def joined_recently(
    member: discord.Member,
    max_age: timedelta,
    now: datetime | None = None,
) -> bool:
    """Check if a member joined the guild within `max_age`."""
    if member.joined_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return member.joined_at + max_age >= now


def to_inbound(message: discord.Message, reply_to_author_id: str | None = None) -> InboundMessage:
    """Convert a Discord message to the engine's message type."""
    return InboundMessage(
        message_id=str(message.id),
        author_id=str(message.author.id),
        content=message.content,
        attachments=[
            Attachment(
                url=a.proxy_url or a.url,
                filename=a.filename,
                content_type=a.content_type or "",
            )
            for a in message.attachments
        ],
        reply_to_author_id=reply_to_author_id,
    )


def split_message(text: str, limit: int = DISCORD_MESSAGE_LIMIT) -> list[str]:
    """Split text into Discord-sized chunks, preferring line breaks."""
    chunks = []
    while len(text) > limit:
        cut = text.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(text[:cut])
        text = text[cut:].lstrip("\n")
    if text:
        chunks.append(text)
    return chunks


class DiscordChannel:
    """
    Discord transport for the conversation engine.

    Configuration (via DiscordConfig):
    - token: Bot token from Discord Developer Portal
    - allow_guilds: List of allowed guild IDs (empty = all)
    - allow_channels: List of allowed channel IDs (empty = all)
    - ignore_members_after_hours: Established members are not auto-answered
    """

    name = "discord"

    def __init__(
        self,
        config: DiscordConfig,
        engine: ConversationEngine,
        usage: UsageConfig | None = None,
    ):
        self.config = config
        self.engine = engine
        self.usage = usage or UsageConfig()

        self.token = config.token
        self.allow_guilds = set(config.allow_guilds or [])
        self.allow_channels = set(config.allow_channels or [])
        self.member_window = timedelta(hours=config.ignore_members_after_hours)

        intents = discord.Intents.default()
        intents.message_content = True
        intents.members = True
        intents.guild_messages = True

        self.client = discord.Client(intents=intents)
        self.tree = app_commands.CommandTree(self.client)
        self._running = False

        self._setup_handlers()

    def _setup_handlers(self) -> None:
        """Set up Discord event handlers."""

        @self.client.event
        async def on_ready():
            logger.info(f"Discord bot logged in as {self.client.user}")
            self.engine.bot_id = str(self.client.user.id)

            try:
                synced = await self.tree.sync()
                logger.info(f"Synced {len(synced)} application commands")
            except Exception as e:
                logger.error(f"Failed to sync commands: {e}")

        @self.client.event
        async def on_message(message: discord.Message):
            if message.author.bot or message.webhook_id is not None:
                return
            if not isinstance(message.author, discord.Member):
                return
            if not self._is_allowed_channel(message.guild, message.channel):
                return

            await self._process_message(message)

        ask_menu = app_commands.ContextMenu(name="Ask SupportBot", callback=self._ask)
        self.tree.add_command(ask_menu)

    def _is_allowed_channel(self, guild: discord.Guild | None, channel) -> bool:
        """Check guild and channel allowlists."""
        if guild is None:
            return False
        if self.allow_guilds and str(guild.id) not in self.allow_guilds:
            return False
        if self.allow_channels and str(channel.id) not in self.allow_channels:
            return False
        return True

    async def _referenced_author(self, message: discord.Message) -> str | None:
        """Author id of the message being replied to, if any."""
        if message.type != discord.MessageType.reply or message.reference is None:
            return None

        referenced = message.reference.resolved
        if isinstance(referenced, discord.Message):
            return str(referenced.author.id)

        if message.reference.message_id is None:
            return None
        try:
            referenced = await message.channel.fetch_message(message.reference.message_id)
        except discord.HTTPException as e:
            logger.debug(f"Could not fetch referenced message: {e}")
            return None
        return str(referenced.author.id)

    async def _process_message(self, message: discord.Message) -> None:
        """Hand a member's message to the engine."""
        member = message.author
        reply_to = await self._referenced_author(message)

        async def deliver(success: bool, text: str) -> None:
            if not success:
                return
            for chunk in split_message(text):
                await message.reply(chunk, mention_author=False)

        result = self.engine.handle_message(
            to_inbound(message, reply_to),
            deliver,
            is_privileged=is_privileged(member),
            can_start=joined_recently(member, self.member_window),
        )
        if result == IntakeResult.IGNORED:
            logger.debug(f"Ignoring message from {member.name} (joined {member.joined_at})")
        elif result == IntakeResult.USAGE_CAP_HIT:
            await message.reply(self.usage.warning_message, mention_author=False)

    async def _ask(self, interaction: discord.Interaction, message: discord.Message) -> None:
        """Message command: answer the target message's author immediately."""
        author = message.author
        if not isinstance(author, discord.Member):
            await interaction.response.send_message(
                "This only works for messages from server members.", ephemeral=True
            )
            return

        try:
            user_id = str(author.id)
            gated = self.engine.check_usage(user_id, is_privileged(author))
            if gated is not None:
                # Interactions need a response even after the one-time warning
                notice = self.usage.warning_message if gated == IntakeResult.USAGE_CAP_HIT else CAPPED_NOTICE
                await interaction.response.send_message(notice, ephemeral=True)
                logger.info(f"{author.name} has hit their usage cap")
                return

            await interaction.response.defer(thinking=True)

            related = await self._gather_related(message)

            async def deliver(success: bool, text: str) -> None:
                content = text if success else self.config.failure_message
                for chunk in split_message(content):
                    await interaction.followup.send(chunk)

            result = self.engine.ask(
                user_id,
                [to_inbound(m) for m in related],
                deliver,
                is_privileged(author),
            )
            if result == IntakeResult.IGNORED:
                await interaction.followup.send("There is nothing to answer there.", ephemeral=True)
            elif result in (IntakeResult.USAGE_CAP_HIT, IntakeResult.USAGE_CAPPED):
                await interaction.followup.send(CAPPED_NOTICE, ephemeral=True)

        except Exception as e:
            logger.error(f"Error during ask. Author {author.name}, question {message.content!r}: {e}")
            try:
                await interaction.followup.send("Error during response...", ephemeral=True)
            except discord.HTTPException:
                pass

    async def _gather_related(self, message: discord.Message) -> list[discord.Message]:
        """The target message plus the author's nearby messages, oldest first."""
        channel = message.channel
        nearby = [message]

        if self.config.context_messages_before > 0:
            async for m in channel.history(limit=self.config.context_messages_before, before=message):
                nearby.append(m)
        if self.config.context_messages_after > 0:
            async for m in channel.history(limit=self.config.context_messages_after, after=message):
                nearby.append(m)

        related = [m for m in nearby if m.author.id == message.author.id]
        return sorted(related, key=lambda m: m.created_at)

    async def start(self) -> None:
        """Start the Discord bot."""
        logger.info("Starting Discord channel")
        self._running = True

        try:
            await self.client.start(self.token)
        except Exception as e:
            logger.error(f"Discord bot error: {e}")
            self._running = False

    async def stop(self) -> None:
        """Stop the Discord bot."""
        logger.info("Stopping Discord channel")
        self._running = False
        await self.client.close()

    @property
    def is_running(self) -> bool:
        """Check if the channel is running."""
        return self._running and self.client.is_ready()
