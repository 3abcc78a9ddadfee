"""
Polling ingestion loop for earthquake news.

Each pass crawls the seed index pages, skips URLs that were already handled,
extracts article text, asks the classifier for a JSON summary, fingerprints the
event and upserts it into the keyed store. Passes repeat on a fixed rescan
interval; classifier calls are paced by a fixed delay.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Sequence

from dotenv import load_dotenv

from src.services.classifier import (
    DEFAULT_GEMINI_MODEL,
    DEFAULT_LOCAL_MODEL_ID,
    BaseClassifier,
    GeminiClassifier,
    LocalModelClassifier,
    build_prompt,
)
from src.services.crawler import DEFAULT_SEED_URLS, CrawlerConfig, PageCrawler
from src.services.errors import ClassifierError, NoBodyError, ParseError, StoreError
from src.services.event_store import (
    DEFAULT_DB_PATH,
    DEFAULT_REGION,
    DEFAULT_TABLE_NAME,
    BaseEventStore,
    UpsertOutcome,
    open_store,
    upsert_event,
)
from src.services.fingerprint import fingerprint
from src.services.quake_events import is_persistable, parse_event_response
from src.services.text_extraction import extract_text

LOGGER = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[2]

DEFAULT_MAX_PAGE_CHARS = 1_000_000
# Gemini free tier allows 4 requests per minute.
DEFAULT_CLASSIFIER_DELAY = 15.0
DEFAULT_RESCAN_INTERVAL = 24 * 60 * 60.0
DEFAULT_HTTP_TIMEOUT = 10.0


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _list_env(name: str, default: Sequence[str]) -> list[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class IngestionSettings:
    store_backend: str = "sqlite"
    db_path: Path = DEFAULT_DB_PATH
    table_name: str = DEFAULT_TABLE_NAME
    region: str = DEFAULT_REGION
    classifier: str = "gemini"
    gemini_api_key: str | None = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    local_model_id: str = DEFAULT_LOCAL_MODEL_ID
    seed_urls: list[str] = field(default_factory=lambda: list(DEFAULT_SEED_URLS))
    max_page_chars: int = DEFAULT_MAX_PAGE_CHARS
    classifier_delay: float = DEFAULT_CLASSIFIER_DELAY
    rescan_interval: float = DEFAULT_RESCAN_INTERVAL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    @classmethod
    def from_env(cls) -> "IngestionSettings":
        """Read settings from the process environment; bad numbers raise ValueError."""
        return cls(
            store_backend=os.getenv("QUAKE_STORE_BACKEND", "sqlite").strip().lower(),
            db_path=Path(os.getenv("QUAKE_DB_PATH") or DEFAULT_DB_PATH),
            table_name=os.getenv("QUAKE_TABLE_NAME") or DEFAULT_TABLE_NAME,
            region=os.getenv("AWS_REGION") or DEFAULT_REGION,
            classifier=os.getenv("QUAKE_CLASSIFIER", "gemini").strip().lower(),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
            local_model_id=os.getenv("QUAKE_LOCAL_MODEL_ID") or DEFAULT_LOCAL_MODEL_ID,
            seed_urls=_list_env("QUAKE_SEED_URLS", DEFAULT_SEED_URLS),
            max_page_chars=_int_env("QUAKE_MAX_PAGE_CHARS", DEFAULT_MAX_PAGE_CHARS),
            classifier_delay=_float_env("QUAKE_CLASSIFIER_DELAY", DEFAULT_CLASSIFIER_DELAY),
            rescan_interval=_float_env("QUAKE_RESCAN_INTERVAL", DEFAULT_RESCAN_INTERVAL),
            http_timeout=_float_env("QUAKE_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
        )


class VisitedUrls:
    """URLs already classified or excluded during this process lifetime."""

    def __init__(self, urls: Iterable[str] = ()) -> None:
        self._urls: set[str] = {url for url in urls if url}

    def __contains__(self, url: object) -> bool:
        return url in self._urls

    def __len__(self) -> int:
        return len(self._urls)

    def add(self, url: str) -> None:
        self._urls.add(url)


class PageOutcome(str, Enum):
    OVERSIZED = "oversized"
    EXTRACT_FAILED = "extract_failed"
    CLASSIFY_FAILED = "classify_failed"
    PARSE_FAILED = "parse_failed"
    REJECTED = "rejected"
    STORE_FAILED = "store_failed"
    CREATED = "created"
    UPDATED = "updated"
    UNEXPECTED_ERROR = "unexpected_error"


# Outcomes that may follow a classifier call; each one is followed by the pacing delay.
CLASSIFIED_OUTCOMES = frozenset(
    {
        PageOutcome.CLASSIFY_FAILED,
        PageOutcome.PARSE_FAILED,
        PageOutcome.REJECTED,
        PageOutcome.STORE_FAILED,
        PageOutcome.CREATED,
        PageOutcome.UPDATED,
        PageOutcome.UNEXPECTED_ERROR,
    }
)


@dataclass
class PassSummary:
    crawled: int = 0
    already_visited: int = 0
    outcomes: Counter = field(default_factory=Counter)

    def describe(self) -> str:
        parts = [f"{outcome.value}={count}" for outcome, count in sorted(self.outcomes.items())]
        return (
            f"crawled={self.crawled} already_visited={self.already_visited} "
            + (" ".join(parts) or "processed=0")
        )


class QuakeIngestor:
    """Sequential crawl -> extract -> classify -> fingerprint -> upsert loop."""

    def __init__(
        self,
        crawler: PageCrawler,
        classifier: BaseClassifier,
        store: BaseEventStore,
        visited: VisitedUrls,
        settings: IngestionSettings,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.crawler = crawler
        self.classifier = classifier
        self.store = store
        self.visited = visited
        self.settings = settings
        self.sleep = sleep
        self.now = now

    def run_forever(self, max_passes: int | None = None) -> int:
        passes = 0
        while max_passes is None or passes < max_passes:
            passes += 1
            try:
                summary = self.run_pass()
            except Exception:
                LOGGER.exception("Crawl pass %s failed.", passes)
            else:
                LOGGER.info("Pass %s complete: %s", passes, summary.describe())
            if max_passes is not None and passes >= max_passes:
                break
            LOGGER.info("Sleeping %.0fs until the next crawl pass", self.settings.rescan_interval)
            self.sleep(self.settings.rescan_interval)
        return passes

    def run_pass(self) -> PassSummary:
        summary = PassSummary()
        crawled = self.crawler.crawl(self.settings.seed_urls)
        summary.crawled = len(crawled)
        LOGGER.info("Crawl returned %s pages", len(crawled))
        for url, raw_html in crawled.items():
            if url in self.visited:
                summary.already_visited += 1
                continue
            # Marked before processing so a failing page is never retried.
            self.visited.add(url)
            try:
                outcome = self.process_page(url, raw_html)
            except Exception:
                LOGGER.exception("Unexpected failure while processing %s", url)
                outcome = PageOutcome.UNEXPECTED_ERROR
            summary.outcomes[outcome] += 1
            if outcome in CLASSIFIED_OUTCOMES:
                self.sleep(self.settings.classifier_delay)
        return summary

    def process_page(self, url: str, raw_html: str) -> PageOutcome:
        if len(raw_html) > self.settings.max_page_chars:
            LOGGER.info("Skipping %s: %s characters exceeds the page ceiling", url, len(raw_html))
            return PageOutcome.OVERSIZED
        try:
            text = extract_text(raw_html)
        except (ParseError, NoBodyError) as exc:
            LOGGER.warning("Text extraction failed for %s: %s", url, exc)
            return PageOutcome.EXTRACT_FAILED
        if not text:
            LOGGER.warning("No body text extracted from %s", url)
            return PageOutcome.EXTRACT_FAILED
        LOGGER.debug("Classifying %s (%s characters)", url, len(text))
        try:
            response = self.classifier.classify(build_prompt(text))
        except ClassifierError as exc:
            LOGGER.warning("Classifier call failed for %s: %s", url, exc)
            return PageOutcome.CLASSIFY_FAILED
        try:
            record = parse_event_response(response, url)
        except ParseError as exc:
            LOGGER.warning("Failed to parse classifier response for %s: %s\n%s", url, exc, response)
            return PageOutcome.PARSE_FAILED
        if not is_persistable(record):
            LOGGER.info(
                "Discarding %s: magnitude=%s location=%r date=%r",
                url,
                record.magnitude,
                record.location,
                record.date,
            )
            return PageOutcome.REJECTED
        record.id = fingerprint(record.magnitude, record.location, record.date)
        try:
            outcome = upsert_event(self.store, record, now=self.now)
        except StoreError as exc:
            LOGGER.warning("Failed to upsert event %s from %s: %s", record.id, url, exc)
            return PageOutcome.STORE_FAILED
        if outcome is UpsertOutcome.CREATED:
            return PageOutcome.CREATED
        return PageOutcome.UPDATED


def bootstrap(store: BaseEventStore) -> VisitedUrls:
    """Prepare the store and seed the visited set from every stored refUrl."""
    store.ensure_ready()
    records = store.scan()
    visited = VisitedUrls(record.ref_url for record in records)
    LOGGER.info("Loaded %s stored events (%s known URLs)", len(records), len(visited))
    return visited


def build_classifier(settings: IngestionSettings) -> BaseClassifier:
    if settings.classifier == "gemini":
        return GeminiClassifier(
            settings.gemini_api_key,
            model=settings.gemini_model,
            timeout=settings.http_timeout,
        )
    if settings.classifier == "local":
        return LocalModelClassifier(model_id=settings.local_model_id)
    raise ValueError(f"Unknown classifier backend {settings.classifier!r}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Crawl earthquake news and store structured events.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO).",
    )
    parser.add_argument(
        "--store",
        choices=("sqlite", "dynamodb"),
        default=None,
        help="Keyed store backend (default: $QUAKE_STORE_BACKEND or sqlite).",
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        default=None,
        help=f"SQLite store path (default: $QUAKE_DB_PATH or {DEFAULT_DB_PATH}).",
    )
    parser.add_argument(
        "--classifier",
        choices=("gemini", "local"),
        default=None,
        help="Classification backend (default: $QUAKE_CLASSIFIER or gemini).",
    )
    parser.add_argument(
        "--seed-url",
        action="append",
        default=[],
        help="Index page to crawl; repeat for several (default: built-in earthquake hubs).",
    )
    parser.add_argument(
        "--classifier-delay",
        type=float,
        default=None,
        help="Seconds to wait after each classified page.",
    )
    parser.add_argument(
        "--rescan-interval",
        type=float,
        default=None,
        help="Seconds to wait between crawl passes.",
    )
    parser.add_argument(
        "--max-passes",
        type=int,
        default=None,
        help="Stop after N crawl passes (omit to run indefinitely).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single crawl pass and exit.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        force=True,
    )

    dotenv_loaded = load_dotenv(dotenv_path=REPO_ROOT / ".env")
    if dotenv_loaded:
        LOGGER.debug("Loaded environment variables from .env file.")

    try:
        settings = IngestionSettings.from_env()
    except ValueError:
        LOGGER.exception("Invalid ingestion settings in the environment.")
        return 1
    if args.store:
        settings.store_backend = args.store
    if args.db_path:
        settings.db_path = args.db_path
    if args.classifier:
        settings.classifier = args.classifier
    if args.seed_url:
        settings.seed_urls = list(args.seed_url)
    if args.classifier_delay is not None:
        settings.classifier_delay = args.classifier_delay
    if args.rescan_interval is not None:
        settings.rescan_interval = args.rescan_interval
    LOGGER.info(
        "Starting earthquake ingestion (store=%s classifier=%s seeds=%s)",
        settings.store_backend,
        settings.classifier,
        len(settings.seed_urls),
    )

    try:
        store = open_store(
            settings.store_backend,
            db_path=settings.db_path,
            table_name=settings.table_name,
            region=settings.region,
            timeout=settings.http_timeout,
        )
        visited = bootstrap(store)
    except (StoreError, ValueError):
        LOGGER.exception("Unable to reach the event store.")
        return 1
    try:
        classifier = build_classifier(settings)
    except (ClassifierError, ValueError, ImportError):
        LOGGER.exception("Unable to construct the classifier client.")
        store.close()
        return 1

    crawler = PageCrawler(CrawlerConfig(ignored_urls=visited, timeout=settings.http_timeout))
    ingestor = QuakeIngestor(crawler, classifier, store, visited, settings)
    max_passes = 1 if args.once else args.max_passes
    try:
        ingestor.run_forever(max_passes=max_passes)
    except KeyboardInterrupt:
        LOGGER.info("Interrupted; shutting down.")
    finally:
        classifier.close()
        crawler.close()
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
