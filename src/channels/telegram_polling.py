import asyncio
import datetime
from functools import wraps

import telegram
from telegram.constants import ChatAction
from telegram.ext import Application, ApplicationBuilder, CommandHandler, ContextTypes, MessageHandler, filters

from channels.base import MessageGateway
from config.prompts import FORBIDDEN_REPLY, START_REPLY
from config.settings import ALLOWED_TELEGRAM_USER_IDS, TELEGRAM_BOT_TOKEN
from datamodel import ChannelType, IncomingMessage
from events import bus, E
from logger import logger

__all__ = ["TelegramGateway"]


def requires_auth(func):
    @wraps(func)
    async def decorated(update: telegram.Update, *args, **kwargs):
        if ALLOWED_TELEGRAM_USER_IDS and update.effective_user.id not in ALLOWED_TELEGRAM_USER_IDS:
            logger.warning(f"用户 {update.effective_user.id} 未经允许访问 Bot")
            await update.message.reply_text(FORBIDDEN_REPLY)
        else:
            return await func(update, *args, **kwargs)
    return decorated


@requires_auth
async def cmd_start(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.info(f"收到 /start 命令来自 Telegram ID: {update.effective_user.id}")
    await update.message.reply_text(START_REPLY)


@requires_auth
async def process_message(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.message is None or not update.message.text:
        return

    user = update.effective_user
    logger.info(f"[{user.username or user.first_name}] ({user.id}) 写道: {update.message.text}")

    try:
        await context.bot.send_chat_action(chat_id=update.effective_chat.id, action=ChatAction.TYPING)
    except telegram.error.TelegramError as e:
        logger.debug(f"发送 typing 动作失败: {e}")

    bus.emit(
        E.IO_MESSAGE_RECEIVED,
        IncomingMessage(
            channel_type=ChannelType.TELEGRAM_BOT_POLLING,
            user_id=user.id,
            content=update.message.text,
            timestamp=update.message.date,
            metadata={"channel_chat_id": update.effective_chat.id},
        ),
    )


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """处理 telegram 库中发生的错误"""
    logger.opt(exception=context.error).error(f"Telegram 错误: {context.error}")


def bot_error_callback(error: telegram.error.TelegramError) -> None:
    if isinstance(error, telegram.error.NetworkError):
        logger.warning(f"Telegram Bot 网络错误: {error}")
    else:
        logger.opt(exception=error).error(f"Telegram Bot 发生预期外的错误: {error}")


class TelegramGateway(MessageGateway):
    """私聊场景下 chat_id 与用户 ID 相同, 直接用用户 ID 发送"""

    channel_type = ChannelType.TELEGRAM_BOT_POLLING

    def __init__(self, token: str = TELEGRAM_BOT_TOKEN) -> None:
        self.app: Application = ApplicationBuilder().token(token).build()
        self.app.add_handler(CommandHandler("start", cmd_start))
        self.app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, process_message))
        self.app.add_error_handler(error_handler)
        self._initialized = False

    async def send(self, user_id: int, text: str) -> bool:
        logger.info(f"发送消息给用户 {user_id}: {text}")
        try:
            await self.app.bot.send_message(chat_id=user_id, text=text)
        except telegram.error.TelegramError as e:
            logger.opt(exception=e).error(f"向 Telegram 用户 {user_id} 发送消息失败: {e}")
            return False
        bus.emit(E.IO_MESSAGE_SENT, user_id, text)
        return True

    async def initialize(self) -> None:
        """初始化 Bot (可以发消息), 但还不开始接收消息"""
        await self.app.initialize()
        self._initialized = True

    async def run(self, shutdown_event: asyncio.Event) -> None:
        try:
            await self.app.updater.start_polling(
                poll_interval=0.5,
                timeout=datetime.timedelta(seconds=15),
                bootstrap_retries=-1,
                drop_pending_updates=False,  # 保留下线期间的消息
                error_callback=bot_error_callback,
            )
            await self.app.start()
            logger.info("Telegram Bot Polling 已启动")

            await shutdown_event.wait()
        finally:
            logger.info("关闭 Telegram Bot Polling...")
            if self.app.updater.running:
                await self.app.updater.stop()
            if self.app.running:
                await self.app.stop()

    async def shutdown(self) -> None:
        if self._initialized:
            await self.app.shutdown()
            self._initialized = False
