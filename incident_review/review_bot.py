"""
Handling of inbound Telegram updates for the review workflow.

Reviewers press Approve or Reject on a candidate, then pick a street from
the options scraped from the article (or type one). Picking a street
persists the incident straight away; the approval sweep covers whatever
this path does not finish.
"""

import asyncio
from html import escape
from typing import Iterable, List, Optional, Protocol

from telegram import Update
from telegram.ext import ContextTypes, TypeHandler

from incident_review.callback_data import CallbackAction, CallbackData, parse_callback_data
from incident_review.config import Settings
from incident_review.constants import MANUAL_STREET_OPTION, STATUS_MARKER, UNKNOWN_STREET_OPTION
from incident_review.models import EMPTY_ARTICLE_DETAILS, ArticleDetails, Candidate, Decision, FireIncident
from incident_review.persistence import IncidentPersistError, IncidentRepository, persist_candidate
from incident_review.store import CandidateStore
from incident_review.tokens import normalize_candidate_id
from incident_review.updates import InboundCallback, InboundMessage, parse_update
from util.logging_util import log_telegram_update_received, setup_logger

logger = setup_logger(__name__)

STREET_PROMPT = "Select the street to insert for this incident:"
MANUAL_STREET_PROMPT = "Please type the street name to use for this incident."
REJECTED_MESSAGE = "This article will be ignored and will not be considered."
PERSIST_FAILED_MESSAGE = (
    "Failed to save the approved article. Please retry later; it will also be retried automatically."
)


class ReviewNotifier(Protocol):
    async def send_message(self, chat_id, message: str) -> Optional[int]:
        ...

    async def send_street_selection(self, chat_id, prompt: str, streets: List[str], callback_token: str) -> Optional[int]:
        ...

    async def answer_callback(self, callback_query_id: str, message: str, show_alert: bool = True) -> bool:
        ...

    async def remove_inline_keyboard(self, chat_id, message_id: int) -> bool:
        ...

    async def update_message_text(self, chat_id, message_id: int, html_text: str) -> bool:
        ...


class DetailsFetcher(Protocol):
    def fetch(self, candidate: Candidate) -> ArticleDetails:
        ...


def build_street_options(streets: Iterable[str]) -> List[str]:
    """
    Street buttons for an approved candidate.

    Detected streets trimmed and deduplicated case-insensitively, "(unknown)"
    when nothing was detected, and always the manual entry option last.
    """
    options = []
    seen = set()
    for street in streets or ():
        if street is None or not street.strip():
            continue
        street = street.strip()
        if street.casefold() in seen:
            continue
        seen.add(street.casefold())
        options.append(street)

    if not options:
        options.append(UNKNOWN_STREET_OPTION)

    if MANUAL_STREET_OPTION.casefold() not in seen:
        options.append(MANUAL_STREET_OPTION)

    return options


def build_status_message(text: Optional[str], decision: Decision) -> Optional[str]:
    """
    The reviewed message with a status line appended, as HTML.

    Returns None when there is nothing to edit or the status is already there.
    """
    if not text or not text.strip():
        return None
    # Telegram hands back the rendered text, so the marker shows up without tags
    if "\n\nstatus: " in text.lower():
        return None

    decision_text = "Approved" if decision == Decision.APPROVED else "Rejected"
    return f"{escape(text)}\n\n{STATUS_MARKER} {decision_text}"


def build_saved_message(incident: FireIncident) -> str:
    return "\n".join([
        "Approved and saved:",
        f"Datetime (UTC): {incident.datetime.isoformat()}",
        f"Street: {incident.street}",
        f"Photo URL: {incident.photo_url}",
    ])


class ReviewDispatcher:
    """
    Applies inbound updates to the candidate store.

    One instance serves every update; handle_update may run for many
    updates at once. All ordering between them is left to the store.

    Args:
        store: Shared candidate store.
        notifier: Outbound Telegram calls.
        repository: Where approved incidents are inserted.
        details_fetcher: Scrapes streets from the article on approval.
        settings: Loaded settings, for authorization and /start.
    """

    def __init__(
        self,
        store: CandidateStore,
        notifier: ReviewNotifier,
        repository: IncidentRepository,
        details_fetcher: Optional[DetailsFetcher],
        settings: Settings,
    ):
        self._store = store
        self._notifier = notifier
        self._repository = repository
        self._details_fetcher = details_fetcher
        self._settings = settings

    def is_authorized(self, chat_id, user_id) -> bool:
        expected = self._settings.telegram.chat_id
        if expected is None or not str(expected).strip():
            return True
        expected = str(expected).strip()
        return (chat_id is not None and str(chat_id) == expected) or (
            user_id is not None and str(user_id) == expected
        )

    async def handle_update(self, payload: dict) -> bool:
        """Returns True when the update was acted on."""
        update = parse_update(payload)
        if update is None:
            return False

        message = update.message
        if message is not None and message.text is not None:
            log_telegram_update_received(logger, update.update_id, message.chat_id, "message", message.text)
            if message.text.lower().startswith("/start"):
                if await self._handle_start(message):
                    return True
            elif await self._handle_manual_street(message):
                return True

        callback = update.callback_query
        if callback is None or callback.data is None:
            logger.debug(f"Ignoring non-callback update {update.update_id}")
            return False

        log_telegram_update_received(logger, update.update_id, callback.chat_id, "callback", callback.data)
        return await self._handle_callback(callback)

    async def _handle_start(self, message: InboundMessage) -> bool:
        if not self.is_authorized(message.chat_id, message.from_id):
            logger.warning("Ignoring /start from unauthorized chat")
            return False

        chat_id = message.chat_id if message.chat_id is not None else message.from_id
        await self._notifier.send_message(chat_id, self._configuration_summary())
        return True

    def _configuration_summary(self) -> str:
        rss = self._settings.rss
        persistence = self._settings.persistence
        return "\n".join([
            "Configuration",
            f"RSS feeds: {len(rss.feeds)}",
            f"RSS poll interval: {rss.poll_interval_seconds:g}s",
            f"RSS keywords: {len(rss.keywords)}",
            f"Approval sweep interval: {persistence.poll_interval_seconds:g}s",
            f"Database configured: {'yes' if persistence.database_url else 'no'}",
        ])

    async def _handle_manual_street(self, message: InboundMessage) -> bool:
        if not self.is_authorized(message.chat_id, message.from_id):
            logger.warning("Ignoring manual street entry from unauthorized chat")
            return False

        chat = message.chat_id if message.chat_id is not None else message.from_id
        if chat is None:
            return False
        chat_id = str(chat)

        candidate_id = self._store.manual_street_request(chat_id)
        if not candidate_id:
            return False

        if self._store.get(candidate_id) is None:
            logger.warning(f"Manual street entry candidate {candidate_id} could not be loaded")
            self._store.clear_manual_street_request(chat_id, candidate_id)
            return False

        street = message.text.strip()
        if not street:
            await self._notifier.send_message(chat_id, "Please send a valid street name.")
            return True

        if not self._store.select_manual_street(candidate_id, street):
            logger.warning(f"Manual street selection could not be updated for {candidate_id}")
            self._store.clear_manual_street_request(chat_id, candidate_id)
            await self._notifier.send_message(chat_id, "Street already selected.")
            return True

        self._store.clear_manual_street_request(chat_id, candidate_id)
        return await self._persist_selected_street(candidate_id, street, chat_id)

    async def _handle_callback(self, callback: InboundCallback) -> bool:
        if not self.is_authorized(callback.chat_id, callback.from_id):
            logger.warning("Ignoring callback from unauthorized chat")
            await self._answer(callback, "Not authorized.")
            return False

        data = parse_callback_data(callback.data)
        if data is None:
            logger.warning(f"Unable to parse callback data: {callback.data}")
            await self._answer(callback, "Unable to process this action.")
            return False

        candidate_id = self._store.resolve_candidate_id(data.token)
        if not candidate_id:
            logger.warning(f"Unable to resolve callback token: {data.token}")
            await self._answer(callback, "This action has expired.")
            return False

        if data.action == CallbackAction.SELECT_STREET:
            return await self._handle_street_selection(callback, candidate_id, data)

        return await self._handle_decision(callback, candidate_id, data)

    async def _handle_decision(self, callback: InboundCallback, candidate_id: str, data: CallbackData) -> bool:
        decision = Decision.APPROVED if data.action == CallbackAction.APPROVE else Decision.REJECTED
        if not self._store.set_decision(candidate_id, decision):
            logger.warning(f"Candidate decision could not be updated for {candidate_id}")
            await self._answer(callback, "This item was already processed.")
            return False

        view = self._store.get(candidate_id)
        chat_id = callback.chat_id
        if view is None or chat_id is None:
            logger.warning(f"Unable to respond for candidate {candidate_id}")
            return False

        await self._mark_reviewed(callback, decision)
        logger.info(f"Candidate {candidate_id} marked as {decision.value}")

        if decision == Decision.REJECTED:
            await self._answer(callback, "Rejected.")
            await self._notifier.send_message(chat_id, REJECTED_MESSAGE)
            return True

        details = await self._fetch_details(view.candidate)
        street_options = build_street_options(details.streets)
        if not self._store.set_street_options(candidate_id, street_options):
            logger.warning(f"Unable to store street options for {candidate_id}")
            await self._answer(callback, "Unable to prepare street options.")
            return False

        await self._answer(callback, "Approved. Select a street.")
        await self._notifier.send_street_selection(chat_id, STREET_PROMPT, street_options, data.token)
        return True

    async def _handle_street_selection(self, callback: InboundCallback, candidate_id: str, data: CallbackData) -> bool:
        view = self._store.get(candidate_id)
        if view is None:
            logger.warning(f"Candidate {candidate_id} could not be loaded for street selection")
            await self._answer(callback, "This action has expired.")
            return False

        index = int(data.payload)
        if view.decision != Decision.APPROVED or not view.street_options or index >= len(view.street_options):
            logger.warning(f"Street selection out of range for {candidate_id}")
            await self._answer(callback, "Unknown street selection.")
            return False

        chat_id = callback.chat_id
        if chat_id is None:
            logger.warning(f"Unable to respond for candidate {candidate_id} due to missing chat id")
            return False

        street = view.street_options[index]

        if street.casefold() == MANUAL_STREET_OPTION.casefold():
            if not self._store.begin_manual_street(candidate_id, str(chat_id)):
                logger.warning(f"Manual street selection could not be started for {candidate_id}")
                await self._answer(callback, self._manual_refusal(candidate_id, str(chat_id)))
                return False

            await self._remove_keyboard(callback)
            await self._answer(callback, "Send the street name in chat.")
            await self._notifier.send_message(chat_id, MANUAL_STREET_PROMPT)
            return True

        if not self._store.select_street(candidate_id, street):
            logger.warning(f"Street selection could not be updated for {candidate_id}")
            await self._remove_keyboard(callback)
            await self._answer(callback, "Street already selected.")
            return False

        await self._remove_keyboard(callback)
        await self._answer(callback, f"Selected: {street}")
        return await self._persist_selected_street(candidate_id, street, chat_id)

    async def _persist_selected_street(self, candidate_id: str, street: str, chat_id) -> bool:
        await self._notifier.send_message(chat_id, f"Selected street: {street}. Processing.")

        try:
            inserted = await persist_candidate(self._store, self._repository, candidate_id)
        except IncidentPersistError as e:
            logger.error(f"Failed to insert approved incident for {candidate_id}: {e.__cause__ or e}")
            await self._notifier.send_message(chat_id, PERSIST_FAILED_MESSAGE)
            return False

        if inserted is None:
            await self._notifier.send_message(chat_id, "This article is already being processed.")
            return True

        await self._notifier.send_message(chat_id, build_saved_message(inserted))
        logger.info(f"Candidate {candidate_id} inserted after street selection")
        return True

    async def _fetch_details(self, candidate: Candidate) -> ArticleDetails:
        if self._details_fetcher is None:
            return EMPTY_ARTICLE_DETAILS
        try:
            return await asyncio.to_thread(self._details_fetcher.fetch, candidate)
        except Exception as e:
            logger.warning(f"Article details unavailable for {candidate.id}: {e}")
            return EMPTY_ARTICLE_DETAILS

    def _manual_refusal(self, candidate_id: str, chat_id: str) -> str:
        current = self._store.manual_street_request(chat_id)
        if current is not None and normalize_candidate_id(current) != normalize_candidate_id(candidate_id):
            other = self._store.get(current)
            if other is not None and other.awaiting_manual_street:
                return "Send the street for the previous article first."
        return "Already awaiting a manual street."

    async def _answer(self, callback: InboundCallback, message: str) -> None:
        if not callback.id:
            return
        await self._notifier.answer_callback(callback.id, message, show_alert=True)

    async def _remove_keyboard(self, callback: InboundCallback) -> None:
        message = callback.message
        if message is None or message.chat_id is None or message.message_id is None:
            return
        await self._notifier.remove_inline_keyboard(message.chat_id, message.message_id)

    async def _mark_reviewed(self, callback: InboundCallback, decision: Decision) -> None:
        await self._remove_keyboard(callback)

        message = callback.message
        if message is None or message.chat_id is None or message.message_id is None:
            return
        updated = build_status_message(message.text, decision)
        if updated is None:
            return
        await self._notifier.update_message_text(message.chat_id, message.message_id, updated)


def build_update_handler(dispatcher: ReviewDispatcher) -> TypeHandler:
    """python-telegram-bot handler that forwards every update to the dispatcher."""

    async def forward_update(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await dispatcher.handle_update(update.to_dict())

    return TypeHandler(Update, forward_update)
