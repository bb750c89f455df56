"""
RSS feed fetching and keyword filtering of incident candidates.
"""

import calendar
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import feedparser  # type: ignore
from html2text import html2text

from incident_review.config import FeedConfig
from incident_review.models import Candidate
from util.logging_util import setup_logger

logger = setup_logger(__name__)


def _entry_id(entry: dict) -> Optional[str]:
    """The entry's guid/id, falling back to its link."""
    for key in ("id", "link"):
        value = entry.get(key)
        if value and str(value).strip():
            return str(value).strip()
    return None


def _extract_summary(entry: dict) -> str:
    """Extract and clean summary/description from an RSS entry."""
    summary = entry.get("summary", "") or entry.get("description", "")
    if not summary:
        return ""
    # Convert HTML to plain text
    return html2text(summary).strip()


def _published_at(entry: dict) -> Optional[datetime]:
    """Publish time as an aware UTC datetime, if the feed gives one."""
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed is None:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _normalize_keywords(keywords: Iterable[str]) -> List[str]:
    return [k.strip().lower() for k in keywords if k and k.strip()]


def matches_keywords(text: str, keywords: Iterable[str]) -> bool:
    """Case-insensitive substring match. No keywords means everything matches."""
    normalized = _normalize_keywords(keywords)
    if not normalized:
        return True
    text_lower = text.lower()
    return any(kw in text_lower for kw in normalized)


def fetch_candidates(feed_configs: List[FeedConfig], keywords: Iterable[str]) -> List[Candidate]:
    """
    Fetch keyword-matching candidates from RSS feeds.

    Args:
        feed_configs: Feeds to fetch.
        keywords: Keywords to filter by. Empty means no filtering.

    Returns:
        Candidates in feed order, without duplicates.
    """
    keywords = list(keywords)

    if not feed_configs:
        logger.warning("No RSS feeds configured")
        return []

    seen_ids = set()
    candidates = []

    for feed_config in feed_configs:
        try:
            rss_content = feedparser.parse(feed_config.url)
        except Exception as e:
            logger.error(f"Error fetching RSS for {feed_config.name}: {e}")
            continue

        status = rss_content.get("status")
        if status and status >= 400:
            logger.warning(f"HTTP {status} for feed {feed_config.name}")
            continue

        entries = rss_content.get("entries", [])
        if not entries and rss_content.get("bozo"):
            logger.warning(f"Feed {feed_config.name} could not be parsed: {rss_content.get('bozo_exception')}")
            continue

        for entry in entries:
            candidate_id = _entry_id(entry)
            if candidate_id is None:
                logger.debug(f"Skipping RSS item without id or link: {entry.get('title', '')}")
                continue

            if candidate_id.casefold() in seen_ids:
                continue
            seen_ids.add(candidate_id.casefold())

            title = (entry.get("title") or "").strip()
            summary = _extract_summary(entry)

            if not matches_keywords(f"{title} {summary}", keywords):
                continue

            candidates.append(Candidate(
                id=candidate_id,
                title=title,
                link=(entry.get("link") or "").strip(),
                published_at=_published_at(entry),
                summary=summary or None,
            ))

    logger.info(f"Fetched {len(candidates)} candidates matching keywords from {len(feed_configs)} RSS feeds")
    return candidates
