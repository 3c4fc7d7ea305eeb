"""Telegram channel adapter."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, ClassVar

from loguru import logger
from telegram import Message, Update
from telegram.error import TelegramError
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from limi.channels.events import InboundRequest

MAX_MESSAGE_LENGTH = 4096

RequestHandler = Callable[[InboundRequest], Awaitable[object]]


class LimiMessageFilter(filters.MessageFilter):
    GROUP_CHAT_TYPES: ClassVar[set[str]] = {"group", "supergroup"}

    def filter(self, message: Message) -> bool | dict[str, list[Any]] | None:
        text = message.text
        if not text:
            return False

        # Private chat: everything except commands
        if message.chat.type == "private":
            return not filters.COMMAND.filter(message)

        # Group chat: only `/bot`, a mention, or a reply to the bot
        if message.chat.type in self.GROUP_CHAT_TYPES:
            bot = message.get_bot()
            if text.startswith("/bot "):
                return True
            if self._mentions_bot(message, text, bot.id, (bot.username or "").lower()):
                return True
            if self._is_reply_to_bot(message, bot.id):
                return True

        return False

    @staticmethod
    def _mentions_bot(message: Message, text: str, bot_id: int, bot_username: str) -> bool:
        for entity in message.entities or ():
            if entity.type == "mention" and bot_username:
                mention_text = text[entity.offset : entity.offset + entity.length]
                if mention_text.lower() == f"@{bot_username}":
                    return True
                continue
            if entity.type == "text_mention" and entity.user and entity.user.id == bot_id:
                return True
        return False

    @staticmethod
    def _is_reply_to_bot(message: Message, bot_id: int) -> bool:
        reply_to_message = message.reply_to_message
        if reply_to_message is None or reply_to_message.from_user is None:
            return False
        return reply_to_message.from_user.id == bot_id


@dataclass(frozen=True)
class TelegramConfig:
    """Telegram adapter config."""

    token: str
    allow_from: set[str]


class TelegramChannel:
    """Long-polling inbound adapter that is also the Telegram reply gateway."""

    name = "telegram"

    def __init__(self, config: TelegramConfig, on_request: RequestHandler) -> None:
        self._config = config
        self._on_request = on_request
        self._app: Application | None = None
        self._running = False
        self._requests: set[asyncio.Task[object]] = set()
        self._typing_tasks: dict[str, asyncio.Task[None]] = {}

    async def start(self) -> None:
        if not self._config.token:
            raise RuntimeError("telegram token is empty")
        logger.info("telegram.channel.start allow_from_count={}", len(self._config.allow_from))
        self._running = True
        self._app = Application.builder().token(self._config.token).build()
        self._app.add_handler(CommandHandler("start", self._on_start))
        self._app.add_handler(CommandHandler("help", self._on_help))
        self._app.add_handler(MessageHandler(LimiMessageFilter(), self._on_text, block=False))
        await self._app.initialize()
        await self._app.start()
        updater = self._app.updater
        if updater is None:
            return
        await updater.start_polling(drop_pending_updates=True, allowed_updates=["message"])
        logger.info("telegram.channel.polling")
        while self._running:
            await asyncio.sleep(0.5)

    async def stop(self) -> None:
        self._running = False
        for task in self._typing_tasks.values():
            task.cancel()
        self._typing_tasks.clear()
        if self._app is None:
            return
        updater = self._app.updater
        if updater is not None:
            await updater.stop()
        await self._app.stop()
        await self._app.shutdown()
        self._app = None
        logger.info("telegram.channel.stopped")

    async def deliver(self, channel: str, destination: str, text: str) -> bool:
        if self._app is None:
            logger.warning("telegram.deliver.not_running chat_id={}", destination)
            return False
        try:
            await self._app.bot.send_message(chat_id=int(destination), text=text[:MAX_MESSAGE_LENGTH])
        except TelegramError as exc:
            logger.warning("telegram.deliver.error chat_id={} error={!s}", destination, exc)
            return False
        return True

    async def _on_start(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        if update.message is None:
            return
        await update.message.reply_text("Limi is online. Send a question to start.")

    async def _on_help(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        if update.message is None:
            return
        await update.message.reply_text(
            "Commands:\n"
            "/start - show startup message\n"
            "/help - show this help\n\n"
            "Any other text gets a short answer."
        )

    async def _on_text(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        if update.message is None or update.effective_user is None:
            return
        user = update.effective_user
        sender_tokens = {str(user.id)}
        if user.username:
            sender_tokens.add(user.username)
        if self._config.allow_from and sender_tokens.isdisjoint(self._config.allow_from):
            await update.message.reply_text("Access denied.")
            return

        chat_id = str(update.message.chat_id)
        text = update.message.text or ""
        if text.startswith("/bot "):
            text = text[5:]

        logger.info(
            "telegram.channel.inbound chat_id={} sender_id={} username={} content={}",
            chat_id,
            user.id,
            user.username or "",
            text[:100],
        )
        self.submit(
            InboundRequest(
                channel=self.name,
                destination=chat_id,
                text=text,
                metadata={
                    "sender_id": str(user.id),
                    "username": user.username or "",
                    "message_id": update.message.message_id,
                },
            )
        )

    def submit(self, request: InboundRequest) -> asyncio.Task[object]:
        """Handle one request in its own task."""
        self._start_typing(request)
        task = asyncio.create_task(self._run_request(request))
        self._requests.add(task)
        task.add_done_callback(self._requests.discard)
        return task

    async def _run_request(self, request: InboundRequest) -> object:
        try:
            return await self._on_request(request)
        except Exception:
            logger.exception("telegram.request.error request_id={}", request.request_id)
            return None
        finally:
            self._stop_typing(request.request_id)

    def _start_typing(self, request: InboundRequest) -> None:
        if self._app is None:
            return
        # one indicator per request, several may share a chat
        self._typing_tasks[request.request_id] = asyncio.create_task(self._typing_loop(request.destination))

    def _stop_typing(self, request_id: str) -> None:
        task = self._typing_tasks.pop(request_id, None)
        if task is not None:
            task.cancel()

    async def _typing_loop(self, chat_id: str) -> None:
        try:
            while self._app is not None:
                await self._app.bot.send_chat_action(chat_id=int(chat_id), action="typing")
                await asyncio.sleep(4)
        except asyncio.CancelledError:
            return
        except Exception:
            logger.exception("telegram.channel.typing_loop.error chat_id={}", chat_id)
            return
