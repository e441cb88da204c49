import unittest
from unittest import mock

import requests

from duesync.feed_client import FEED_HEADERS, FeedClient, FeedFetchError, normalize_feed_url
from duesync.models import FeedConfig

FEED_TEXT = "BEGIN:VCALENDAR\r\nBEGIN:VEVENT\r\nUID:a\r\nSUMMARY:Quiz\r\nDTSTART:20240301\r\nEND:VEVENT\r\nEND:VCALENDAR\r\n"


def _response(text: str = FEED_TEXT) -> mock.Mock:
    response = mock.Mock()
    response.raise_for_status.return_value = None
    response.encoding = "utf-8"
    response.text = text
    return response


class FeedClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config = FeedConfig(url="webcal://portal.example/feed.ics", timeout_seconds=7, retries=3, backoff_seconds=0)
        self.session = mock.Mock()

    def test_normalize_feed_url(self) -> None:
        self.assertEqual(normalize_feed_url("webcal://a.example/x.ics"), "https://a.example/x.ics")
        self.assertEqual(normalize_feed_url("WEBCALS://a.example/x.ics"), "https://a.example/x.ics")
        self.assertEqual(normalize_feed_url(" https://a.example/x.ics "), "https://a.example/x.ics")

    def test_fetch_uses_https_headers_and_timeout(self) -> None:
        self.session.get.return_value = _response()
        client = FeedClient(self.config, session=self.session)
        self.assertEqual(client.fetch(), FEED_TEXT)
        self.session.get.assert_called_once_with(
            "https://portal.example/feed.ics",
            headers=FEED_HEADERS,
            timeout=7,
        )

    def test_retries_then_succeeds(self) -> None:
        self.session.get.side_effect = [requests.ConnectionError("reset"), _response()]
        client = FeedClient(self.config, session=self.session)
        with mock.patch("duesync.feed_client.time.sleep") as sleep:
            items = client.fetch_and_parse()
        self.assertEqual([item.uid for item in items], ["a"])
        self.assertEqual(self.session.get.call_count, 2)
        sleep.assert_called_once_with(0)

    def test_gives_up_after_retries(self) -> None:
        self.session.get.side_effect = requests.ConnectionError("down")
        client = FeedClient(self.config, session=self.session)
        with mock.patch("duesync.feed_client.time.sleep"):
            with self.assertRaises(FeedFetchError):
                client.fetch()
        self.assertEqual(self.session.get.call_count, 3)

    def test_http_error_is_retried(self) -> None:
        failing = _response()
        failing.raise_for_status.side_effect = requests.HTTPError("503")
        self.session.get.side_effect = [failing, _response()]
        client = FeedClient(self.config, session=self.session)
        with mock.patch("duesync.feed_client.time.sleep"):
            self.assertEqual(client.fetch(), FEED_TEXT)

    def test_timeout_is_not_retried(self) -> None:
        self.session.get.side_effect = requests.Timeout("slow")
        client = FeedClient(self.config, session=self.session)
        with self.assertRaises(FeedFetchError) as ctx:
            client.fetch()
        self.assertIn("timed out", str(ctx.exception))
        self.assertEqual(self.session.get.call_count, 1)

    def test_missing_url(self) -> None:
        client = FeedClient(FeedConfig(), session=self.session)
        with self.assertRaises(FeedFetchError):
            client.fetch()
        self.session.get.assert_not_called()


if __name__ == "__main__":
    unittest.main()
