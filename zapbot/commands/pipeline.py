"""Inbound message -> command dispatch, with best-effort replies."""

import asyncio
import traceback
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

from loguru import logger

from zapbot.commands.message import MessageInfo, format_message_log, preprocess_message
from zapbot.config.schema import Config
from zapbot.session.events import MessagesUpsert, WAMessage
from zapbot.transport.base import Session
from zapbot.utils.retry import SEND_POLICY, RetryPolicy, retry_operation

WA_DEFAULT_EPHEMERAL = 86400  # 24h disappearing-message timer


@dataclass(frozen=True)
class ParsedCommand:
    name: str
    args: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(self.args)


def parse_command(body: str, prefix: str) -> ParsedCommand | None:
    """Split ``"<prefix><command> arg1 arg2"`` into a command and its args.

    Returns None when the body does not start with the prefix or no command
    follows it.
    """
    if not body or not prefix or not body.startswith(prefix):
        return None
    tokens = body[len(prefix):].strip().split()
    if not tokens:
        return None
    return ParsedCommand(name=tokens[0].lower(), args=tokens[1:])


class Replier:
    """Sends outbound messages through the retry executor, never raising."""

    def __init__(self, session: Session, owner_jid: str = "", policy: RetryPolicy = SEND_POLICY):
        self.session = session
        self.owner_jid = owner_jid
        self.policy = policy

    async def send_content(self, target: str, content: dict[str, Any], **options: Any) -> bool:
        """Send arbitrary content. Returns False if every attempt failed."""
        try:
            await retry_operation(
                lambda: self.session.send_message(target, content, **options),
                self.policy,
            )
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"All send attempts failed for {target}: {e}")
            return False

    async def send_text(self, target: str, text: Any, **options: Any) -> bool:
        text = str(text).strip() if text is not None else ""
        if not text:
            logger.warning("Empty text after sanitizing; nothing sent")
            return False
        return await self.send_content(target, {"text": text}, **options)

    async def report_owner(self, text: Any) -> bool:
        if not self.owner_jid:
            logger.warning(f"No owner configured; dropping report: {text}")
            return False
        return await self.send_text(self.owner_jid, text, ephemeralExpiration=WA_DEFAULT_EPHEMERAL)


@dataclass
class CommandContext:
    """Everything a command handler needs about one inbound command."""

    session: Session
    message: WAMessage
    info: MessageInfo
    command: ParsedCommand
    replier: Replier
    config: Config
    group: dict[str, Any] | None = None

    @property
    def chat_id(self) -> str:
        return self.message.chat_id

    @property
    def sender(self) -> str:
        return self.message.sender

    @property
    def args(self) -> list[str]:
        return self.command.args

    @property
    def text(self) -> str:
        return self.command.text

    @property
    def expiration(self) -> int:
        return self.info.expiration or WA_DEFAULT_EPHEMERAL

    async def reply(self, text: Any) -> bool:
        """Reply to the origin chat, quoting the command message."""
        return await self.replier.send_text(
            self.chat_id, text, quoted=self.message, ephemeralExpiration=self.expiration,
        )

    async def send(self, content: dict[str, Any]) -> bool:
        return await self.replier.send_content(
            self.chat_id, content, quoted=self.message, ephemeralExpiration=self.expiration,
        )

    async def report_owner(self, text: Any) -> bool:
        return await self.replier.report_owner(text)


CommandHandler = Callable[[CommandContext], Awaitable[None]]


class CommandPipeline:
    """Consumes ``messages.upsert`` events and runs matching commands.

    Unknown commands are ignored without a reply. A failing command gets a
    generic apology to the user and a diagnostic to the operator; neither
    path raises.
    """

    def __init__(
        self,
        config: Config,
        commands: Mapping[str, CommandHandler],
        policy: RetryPolicy = SEND_POLICY,
    ):
        self.config = config
        self.commands = dict(commands)
        self.policy = policy

    async def handle_upsert(self, session: Session, upsert: MessagesUpsert) -> None:
        replier = Replier(session, owner_jid=self.config.owner.number, policy=self.policy)
        for msg in upsert.messages:
            await self.process_message(session, replier, msg)

    async def process_message(self, session: Session, replier: Replier, msg: WAMessage) -> None:
        if not msg.key.remote_jid or not msg.message:
            return
        if msg.key.from_me:
            return

        if self.config.bot.read_messages:
            try:
                await session.read_messages([msg.key.to_dict()])
            except Exception as e:
                logger.warning(f"Could not mark message as read: {e}")

        group = None
        if msg.is_group:
            try:
                group = await session.group_metadata(msg.chat_id)
            except Exception as e:
                logger.warning(f"Could not fetch group metadata for {msg.chat_id}: {e}")

        if self.config.bot.log_messages:
            logger.info(format_message_log(msg, group))

        info = preprocess_message(msg)
        command = parse_command(info.body, self.config.bot.prefix)
        if command is None:
            return

        handler = self.commands.get(command.name)
        if handler is None:
            return

        ctx = CommandContext(
            session=session, message=msg, info=info, command=command,
            replier=replier, config=self.config, group=group,
        )
        logger.info(f"Command {command.name} ({info.type}) from {msg.sender}")

        try:
            await handler(ctx)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Command {command.name} failed: {e}")
            await self._report_failure(ctx, e)

    async def _report_failure(self, ctx: CommandContext, error: Exception) -> None:
        contact = ""
        if self.config.owner.phone:
            contact = f" If the problem persists, contact the developer: {self.config.owner.phone}"
        await ctx.reply(f"⚠️ Something went wrong while running that command. Please try again.{contact}")
        detail = "".join(traceback.format_exception(type(error), error, error.__traceback__))[-1500:]
        await ctx.report_owner(
            f"⚠️ Command '{ctx.command.name}' failed for {ctx.sender} in {ctx.chat_id}:\n\n{detail}"
        )
