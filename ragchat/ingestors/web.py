"""Ingestors for web pages and YouTube transcripts."""

from __future__ import annotations

from typing import Any

import requests
from bs4 import BeautifulSoup
from requests.adapters import HTTPAdapter
from urllib3.util import Retry
from youtube_transcript_api import CouldNotRetrieveTranscript, YouTubeTranscriptApi

from ragchat.config import config
from ragchat.errors import IngestionError, InputValidationError
from ragchat.models import SourceInput, SourceType

from .base import BaseIngestor, ExtractedUnit, validate_url, youtube_video_id

logger = config.get_logger(__name__)

RETRY_STATUS_CODES = (429, 500, 502, 503, 504)
STRIPPED_TAGS = ("script", "style", "noscript", "template")
OEMBED_URL = "https://www.youtube.com/oembed"


class TimeoutHTTPAdapter(HTTPAdapter):
    """HTTP adapter that applies a default timeout to every request."""

    def __init__(self, *args: Any, timeout: float, **kwargs: Any) -> None:
        self.timeout = timeout
        super().__init__(*args, **kwargs)

    def send(self, request: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        # requests passes timeout=None when the caller gave none
        if kwargs.get("timeout") is None:
            kwargs["timeout"] = self.timeout
        return super().send(request, **kwargs)


def build_http_session(
    retries: int | None = None,
    timeout: float | None = None,
) -> requests.Session:
    """Create a requests session with retry/backoff on transient failures.

    Args:
        retries: Total retry budget, defaults to ``URL_FETCH_RETRIES``.
        timeout: Per-request timeout in seconds for calls that do not set
            one, defaults to ``URL_FETCH_TIMEOUT``.

    Returns:
        Configured session sending the default API headers.
    """
    retry = Retry(
        total=config.URL_FETCH_RETRIES if retries is None else retries,
        backoff_factor=0.5,
        status_forcelist=RETRY_STATUS_CODES,
        allowed_methods=frozenset({"GET", "HEAD"}),
    )
    adapter = TimeoutHTTPAdapter(
        max_retries=retry,
        timeout=config.URL_FETCH_TIMEOUT if timeout is None else timeout,
    )

    session = requests.Session()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update(config.get_api_headers())
    return session


def html_to_text(html: str) -> tuple[str, str | None]:
    """Extract readable body text and the page title from HTML.

    Returns:
        Tuple of ``(text, title)``; title is None when the page has none.
    """
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else None

    for tag in soup(STRIPPED_TAGS):
        tag.decompose()

    body = soup.body or soup
    lines = (line.strip() for line in body.get_text(separator="\n").splitlines())
    return "\n".join(line for line in lines if line), title or None


class WebPageIngestor(BaseIngestor):
    """Scrapes one web page into a single record."""

    source_type = SourceType.URL

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self.session = session or build_http_session()
        self.timeout = timeout if timeout is not None else config.URL_FETCH_TIMEOUT

    def validate(self, source: SourceInput) -> None:
        validate_url(source.text)

    def source_name(self, source: SourceInput) -> str:
        return (source.text or "").strip()

    def extract(self, source: SourceInput) -> list[ExtractedUnit]:
        """Fetch the page and strip markup.

        Returns:
            A single unit holding the page text.

        Raises:
            IngestionError: If the page cannot be fetched.
        """
        url = self.source_name(source)
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.exception("Error fetching URL %s", url)
            msg = f"Could not fetch URL {url}"
            raise IngestionError(msg) from exc

        text, title = html_to_text(response.text)
        metadata: dict[str, Any] = {"url": url}
        if title:
            metadata["title"] = title
        return [(text, metadata)]


class YouTubeIngestor(BaseIngestor):
    """Loads a YouTube video's transcript as a single record."""

    source_type = SourceType.YOUTUBE

    def __init__(
        self,
        transcript_api: YouTubeTranscriptApi | None = None,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else config.URL_FETCH_TIMEOUT
        self.session = session or build_http_session(timeout=self.timeout)
        self.transcript_api = transcript_api or YouTubeTranscriptApi(
            http_client=self.session
        )

    def validate(self, source: SourceInput) -> None:
        """Check the URL is a recognisable YouTube video link.

        Raises:
            InputValidationError: If it is not.
        """
        url = validate_url(source.text)
        if youtube_video_id(url) is None:
            msg = f"Not a valid YouTube video URL: {url}"
            raise InputValidationError(msg)

    def source_name(self, source: SourceInput) -> str:
        return (source.text or "").strip()

    def fetch_metadata(self, url: str) -> dict[str, Any]:
        """Look up title and channel via oEmbed. Failures yield an empty dict.

        Returns:
            Metadata with ``title``/``author`` when available.
        """
        try:
            response = self.session.get(
                OEMBED_URL,
                params={"url": url, "format": "json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError):
            logger.warning("Could not fetch YouTube metadata for %s", url)
            return {}

        metadata: dict[str, Any] = {}
        if payload.get("title"):
            metadata["title"] = payload["title"]
        if payload.get("author_name"):
            metadata["author"] = payload["author_name"]
        return metadata

    def extract(self, source: SourceInput) -> list[ExtractedUnit]:
        """Fetch the transcript and join its snippets.

        Returns:
            A single unit holding the transcript text.

        Raises:
            IngestionError: If no transcript is available or the request fails.
        """
        url = self.source_name(source)
        video_id = youtube_video_id(url)
        try:
            transcript = self.transcript_api.fetch(video_id)
        except CouldNotRetrieveTranscript as exc:
            logger.exception("No transcript available for video %s", video_id)
            msg = f"Could not retrieve a transcript for {url}"
            raise IngestionError(msg) from exc
        except requests.RequestException as exc:
            logger.exception("Error fetching transcript for video %s", video_id)
            msg = f"Could not fetch the transcript for {url}"
            raise IngestionError(msg) from exc

        snippets = list(transcript)
        text = " ".join(
            snippet.text.replace("\n", " ").strip()
            for snippet in snippets
            if snippet.text.strip()
        )
        duration = 0.0
        if snippets:
            last = snippets[-1]
            duration = last.start + last.duration

        metadata: dict[str, Any] = {
            "url": url,
            "video_id": video_id,
            "duration_seconds": round(duration, 2),
            **self.fetch_metadata(url),
        }
        return [(text, metadata)]
