"""
Outbound Telegram Bot API calls for the review workflow.

Every method reports delivery success (a message id or True) or failure
(None or False). Telegram errors are logged here and never raised.
"""

import asyncio
from html import escape
from typing import List, Optional, Sequence

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ParseMode
from telegram.error import TelegramError

from incident_review.callback_data import CallbackAction, build_callback_data
from incident_review.models import Candidate
from util.logging_util import log_telegram_message_sent, setup_logger

logger = setup_logger(__name__)


def format_candidate_message(candidate: Candidate) -> str:
    """HTML body for a candidate awaiting review."""
    lines = [f"<b>{escape(candidate.title or '(untitled)')}</b>"]
    if candidate.link:
        lines.append(f'<a href="{escape(candidate.link, quote=True)}">Open article</a>')
    if candidate.published_at is not None:
        lines.append(f"Published: {candidate.published_at:%Y-%m-%d %H:%M}")
    if candidate.summary:
        lines.append("")
        lines.append(escape(candidate.summary))
    return "\n".join(lines)


def build_review_keyboard(callback_token: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton("✅ Approve", callback_data=build_callback_data(CallbackAction.APPROVE, callback_token)),
            InlineKeyboardButton("❌ Reject", callback_data=build_callback_data(CallbackAction.REJECT, callback_token)),
        ]
    ])


def build_street_keyboard(streets: Sequence[str], callback_token: str) -> InlineKeyboardMarkup:
    """One button per street; the button index is what comes back."""
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(street, callback_data=build_callback_data(CallbackAction.SELECT_STREET, callback_token, i))]
        for i, street in enumerate(streets)
    ])


class TelegramNotifier:
    """Sends review messages through a lazily created Bot.

    Args:
        bot_token: Bot API token. Without it every send is a logged no-op.
        review_chat_id: Chat that receives new candidates.
    """

    def __init__(self, bot_token: Optional[str], review_chat_id: Optional[str]):
        self._bot_token = bot_token
        self._review_chat_id = review_chat_id
        self._bot: Optional[Bot] = None
        self._bot_lock = asyncio.Lock()

    async def _get_bot(self) -> Optional[Bot]:
        """Create and initialize the Bot once; concurrent callers share it.

        Returns None while Telegram is unreachable; the next call tries again.
        """
        if self._bot is not None:
            return self._bot
        if not self._bot_token:
            logger.warning("Telegram bot token is missing.")
            return None

        async with self._bot_lock:
            if self._bot is None:
                bot = Bot(self._bot_token)
                try:
                    await bot.initialize()
                except TelegramError as e:
                    logger.warning(f"Telegram bot initialization failed: {e}")
                    return None
                self._bot = bot
        return self._bot

    async def aclose(self) -> None:
        if self._bot is not None:
            await self._bot.shutdown()
            self._bot = None

    async def _send(self, chat_id, text: str, reply_markup=None) -> Optional[int]:
        if not text or chat_id is None or str(chat_id).strip() == "":
            return None
        bot = await self._get_bot()
        if bot is None:
            return None
        try:
            message = await bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
                reply_markup=reply_markup,
            )
        except TelegramError as e:
            logger.warning(f"Telegram sendMessage to {chat_id} failed: {e}")
            return None
        log_telegram_message_sent(logger, str(chat_id), text)
        return message.message_id

    async def send_candidate(self, candidate: Candidate, callback_token: str) -> Optional[int]:
        if not self._review_chat_id:
            logger.warning("Telegram review chat id is missing; candidate not sent.")
            return None
        return await self._send(
            self._review_chat_id,
            format_candidate_message(candidate),
            reply_markup=build_review_keyboard(callback_token),
        )

    async def send_message(self, chat_id, message: str) -> Optional[int]:
        return await self._send(chat_id, escape(message) if message else message)

    async def send_street_selection(
        self, chat_id, prompt: str, streets: List[str], callback_token: str
    ) -> Optional[int]:
        return await self._send(
            chat_id,
            escape(prompt),
            reply_markup=build_street_keyboard(streets, callback_token),
        )

    async def answer_callback(self, callback_query_id: str, message: str, show_alert: bool = True) -> bool:
        if not callback_query_id:
            return False
        bot = await self._get_bot()
        if bot is None:
            return False
        try:
            await bot.answer_callback_query(callback_query_id, text=message, show_alert=show_alert)
        except TelegramError as e:
            logger.warning(f"Telegram answerCallbackQuery failed: {e}")
            return False
        return True

    async def remove_inline_keyboard(self, chat_id, message_id: int) -> bool:
        bot = await self._get_bot()
        if bot is None:
            return False
        try:
            await bot.edit_message_reply_markup(chat_id=chat_id, message_id=message_id, reply_markup=None)
        except TelegramError as e:
            logger.warning(f"Telegram editMessageReplyMarkup failed: {e}")
            return False
        return True

    async def update_message_text(self, chat_id, message_id: int, html_text: str) -> bool:
        """Replace a message's text. html_text must already be escaped."""
        bot = await self._get_bot()
        if bot is None:
            return False
        try:
            await bot.edit_message_text(
                text=html_text, chat_id=chat_id, message_id=message_id, parse_mode=ParseMode.HTML
            )
        except TelegramError as e:
            logger.warning(f"Telegram editMessageText failed: {e}")
            return False
        return True
