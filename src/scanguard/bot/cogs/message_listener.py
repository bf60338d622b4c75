"""Message listener cog: hands guild messages with images to the image moderation service."""

import discord
from discord.ext import commands

from scanguard.services.runtime import ScanGuardServices
from scanguard.util import discord_utils
from scanguard.util.image_utils import is_image_attachment
from scanguard.util.logger import get_logger

logger = get_logger("message_listener_cog")


class MessageListenerCog(commands.Cog):
    """Cog responsible for scanning image attachments on new messages."""

    def __init__(self, discord_bot_instance, services: ScanGuardServices):
        self.bot = discord_bot_instance
        self.services = services
        logger.info("Message listener cog loaded")

    @staticmethod
    def _should_scan(message: discord.Message) -> bool:
        if message.guild is None:
            return False
        if discord_utils.is_ignored_author(message.author):
            return False
        return any(is_image_attachment(a) for a in message.attachments)

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message):
        if not self._should_scan(message):
            return

        logger.debug("Scanning images from %s in guild %s", message.author, message.guild.id)
        try:
            await self.services.image_moderation.process_message(message)
        except Exception:
            # Keep the listener alive whatever a single message does
            logger.exception("Error scanning message %s", message.id)


def setup(discord_bot_instance, services: ScanGuardServices):
    discord_bot_instance.add_cog(MessageListenerCog(discord_bot_instance, services))
