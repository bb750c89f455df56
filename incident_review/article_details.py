"""
Scraping of article pages for a photo and street names.
"""

import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from incident_review.constants import ARTICLE_FETCH_TIMEOUT_SECONDS, ARTICLE_USER_AGENT
from incident_review.models import EMPTY_ARTICLE_DETAILS, ArticleDetails, Candidate
from util.logging_util import setup_logger

logger = setup_logger(__name__)

# Romanian and Russian street prefixes followed by a capitalised name (Latin or Cyrillic)
STREET_RE = re.compile(
    r"\b(?:Strada|strada|Str\.|str\.|Bulevardul|Bulevard|bd\.|bd|Bul\.|bul\.|Aleea|Șoseaua|Soseaua|Prospectul"
    r"|ул\.|улица|проспект|пр-т)\s+[A-ZĂÂÎȘȚА-ЯЁ][^,\n]{2,60}"
)

_WHITESPACE_RE = re.compile(r"\s+")

PHOTO_META_KEYS = ("og:image", "twitter:image")


def _absolute_url(base_url: str, url: Optional[str]) -> Optional[str]:
    if not url or not url.strip():
        return None
    return urljoin(base_url, url.strip())


def resolve_photo_url(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    """og:image / twitter:image, else the first article image, else any image."""
    for meta in soup.find_all("meta"):
        key = meta.get("property") or meta.get("name")
        if key in PHOTO_META_KEYS and meta.get("content"):
            return _absolute_url(base_url, meta["content"])

    image = None
    article = soup.find("article")
    if article is not None:
        image = article.find("img", src=True) or article.find("img", attrs={"data-src": True})
    if image is None:
        image = soup.find("img", src=True) or soup.find("img", attrs={"data-src": True})
    if image is None:
        return None
    return _absolute_url(base_url, image.get("src") or image.get("data-src"))


def resolve_streets(soup: BeautifulSoup) -> List[str]:
    """Street mentions in the article text, first occurrence order, case-insensitively unique."""
    area = soup.find("article") or soup.find("body") or soup
    text = _WHITESPACE_RE.sub(" ", area.get_text(" ")).strip()
    if not text:
        return []

    streets = []
    seen = set()
    for match in STREET_RE.finditer(text):
        value = match.group(0).strip()
        if not value or value.casefold() in seen:
            continue
        seen.add(value.casefold())
        streets.append(value)
    return streets


def parse_article_html(html: str, base_url: str) -> ArticleDetails:
    if not html or not html.strip():
        return EMPTY_ARTICLE_DETAILS
    soup = BeautifulSoup(html, "html.parser")
    return ArticleDetails(
        photo_url=resolve_photo_url(soup, base_url),
        streets=resolve_streets(soup),
    )


class ArticleDetailsFetcher:
    """Fetches the candidate's article and extracts details from it.

    Blocking; callers on the event loop run it in a worker thread.
    """

    def __init__(self, timeout: float = ARTICLE_FETCH_TIMEOUT_SECONDS, session: Optional[requests.Session] = None):
        self._timeout = timeout
        self._session = session or requests.Session()

    def fetch(self, candidate: Candidate) -> ArticleDetails:
        url = candidate.link
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return EMPTY_ARTICLE_DETAILS

        try:
            resp = self._session.get(
                url,
                headers={"User-Agent": ARTICLE_USER_AGENT},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Unable to fetch article details for {url}: {e}")
            return EMPTY_ARTICLE_DETAILS

        if not resp.ok:
            logger.warning(f"Failed to fetch article {url}. Status code: {resp.status_code}")
            return EMPTY_ARTICLE_DETAILS

        details = parse_article_html(resp.text, url)
        logger.info(f"Article {url}: photo={'yes' if details.photo_url else 'no'}, {len(details.streets)} street(s)")
        return details
