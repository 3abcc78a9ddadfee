"""
Index-page crawler: fetches seed pages, picks article links out of the
configured containers, and downloads each article page.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Container, Dict, List, Pattern, Sequence
from urllib.parse import urldefrag, urljoin, urlparse

import requests
from bs4 import BeautifulSoup

LOGGER = logging.getLogger(__name__)

DEFAULT_SEED_URLS = [
    "https://apnews.com/hub/earthquakes",
    "https://www.aljazeera.com/tag/earthquakes/",
    "https://abcnews.go.com/alerts/earthquakes",
]


@dataclass
class CrawlerConfig:
    selector_classes: Sequence[str] = ("PageList-items-item", "Topics")
    selector_ids: Sequence[str] = ("root",)
    link_text_patterns: Sequence[str] = ("quake",)
    url_patterns: Sequence[str] = ("quake",)
    ignored_urls: Container[str] = field(default_factory=set)
    max_links_per_seed: int = 100
    timeout: float = 10.0


def _compile_patterns(patterns: Sequence[str]) -> List[Pattern[str]]:
    return [re.compile(re.escape(pattern.strip()), re.IGNORECASE) for pattern in patterns if pattern.strip()]


class PageCrawler:
    def __init__(self, config: CrawlerConfig | None = None, session: requests.Session | None = None) -> None:
        self.config = config or CrawlerConfig()
        self.session = session or requests.Session()
        self._text_patterns = _compile_patterns(self.config.link_text_patterns)
        self._url_patterns = _compile_patterns(self.config.url_patterns)
        self._headers = {
            "User-Agent": (
                "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/114.0.0.0 Safari/537.36"
            )
        }

    def crawl(self, seed_urls: Sequence[str]) -> Dict[str, str]:
        """Return a mapping of article URL to raw HTML for links found on the seeds."""
        pages: Dict[str, str] = {}
        for seed in seed_urls:
            seed_html = self._fetch(seed)
            if seed_html is None:
                continue
            links = self.candidate_links(seed, seed_html)
            LOGGER.info("Seed %s yielded %s candidate links", seed, len(links))
            for link in links:
                if link in pages or link in self.config.ignored_urls:
                    continue
                body = self._fetch(link)
                if body is not None:
                    pages[link] = body
        LOGGER.info("Crawl finished with %s pages from %s seeds", len(pages), len(seed_urls))
        return pages

    def candidate_links(self, page_url: str, page_html: str) -> List[str]:
        soup = BeautifulSoup(page_html, "html.parser")
        containers = self._containers(soup)
        links: List[str] = []
        seen: set[str] = set()
        for container in containers:
            for anchor in container.find_all("a", href=True):
                if len(links) >= self.config.max_links_per_seed:
                    return links
                full_url, _ = urldefrag(urljoin(page_url, anchor["href"]))
                if full_url in seen or urlparse(full_url).scheme not in ("http", "https"):
                    continue
                if not self._matches(anchor.get_text(" ", strip=True), full_url):
                    continue
                if full_url in self.config.ignored_urls:
                    LOGGER.debug("Ignoring known URL %s", full_url)
                    continue
                seen.add(full_url)
                links.append(full_url)
        return links

    def _containers(self, soup: BeautifulSoup) -> List[Any]:
        containers: List[Any] = []
        for class_name in self.config.selector_classes:
            containers.extend(soup.find_all(class_=class_name))
        for element_id in self.config.selector_ids:
            containers.extend(soup.find_all(id=element_id))
        if not containers:
            LOGGER.debug("No configured containers found; scanning the whole page.")
            return [soup]
        return containers

    def _matches(self, link_text: str, url: str) -> bool:
        if not self._text_patterns and not self._url_patterns:
            return True
        if any(pattern.search(link_text) for pattern in self._text_patterns):
            return True
        return any(pattern.search(url) for pattern in self._url_patterns)

    def _fetch(self, url: str) -> str | None:
        try:
            response = self.session.get(url, headers=self._headers, timeout=self.config.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            LOGGER.warning("Failed to fetch %s: %s", url, exc)
            return None
        content_type = response.headers.get("Content-Type", "")
        if content_type and "html" not in content_type.lower():
            LOGGER.debug("Skipping non-HTML response from %s (%s)", url, content_type)
            return None
        return response.text

    def close(self) -> None:
        self.session.close()
