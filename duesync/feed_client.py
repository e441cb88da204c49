from __future__ import annotations

import logging
import time

import requests

from duesync.ics_parser import parse_feed
from duesync.models import CalendarItem, FeedConfig

logger = logging.getLogger(__name__)

FEED_HEADERS = {
    "Accept": "text/calendar, text/plain, */*",
    "Cache-Control": "no-cache",
}


class FeedFetchError(RuntimeError):
    pass


def normalize_feed_url(url: str) -> str:
    text = str(url or "").strip()
    lowered = text.lower()
    for scheme in ("webcals://", "webcal://"):
        if lowered.startswith(scheme):
            return "https://" + text[len(scheme) :]
    return text


class FeedClient:
    def __init__(self, config: FeedConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def fetch(self, url: str | None = None) -> str:
        fetch_url = normalize_feed_url(url or self.config.url)
        if not fetch_url:
            raise FeedFetchError("Feed URL is not configured.")
        retries = max(1, int(self.config.retries))
        last_error: Exception | None = None
        for attempt in range(1, retries + 1):
            try:
                response = self.session.get(
                    fetch_url,
                    headers=FEED_HEADERS,
                    timeout=self.config.timeout_seconds,
                )
                response.raise_for_status()
                if not response.encoding or response.encoding.lower() == "iso-8859-1":
                    response.encoding = "utf-8"
                return response.text
            except requests.Timeout as exc:
                logger.warning("Feed fetch timed out after %ss: %s", self.config.timeout_seconds, fetch_url)
                raise FeedFetchError(f"Request timed out after {self.config.timeout_seconds} seconds") from exc
            except requests.RequestException as exc:
                last_error = exc
                logger.warning("Feed fetch attempt %d/%d failed: %s", attempt, retries, exc)
                if attempt < retries:
                    time.sleep(self.config.backoff_seconds * attempt)
        raise FeedFetchError(f"Failed to fetch calendar feed: {last_error}") from last_error

    def fetch_and_parse(self, url: str | None = None) -> list[CalendarItem]:
        return parse_feed(self.fetch(url))
