from __future__ import annotations

from typing import Any

import requests

from src.services import crawler

SEED = "https://news.example.com/hub/earthquakes"

SEED_HTML = """
<html><body>
  <nav><a href="/quake-nav">Quake navigation outside containers</a></nav>
  <div class="PageList-items-item">
    <a href="/article/big-quake-hits-japan">Japan shaken</a>
    <a href="/article/weather-report">Storm warning</a>
    <a href="https://news.example.com/article/aftershocks#comments">Strong quake aftershocks</a>
    <a href="mailto:tips@example.com">Send an earthquake tip</a>
  </div>
  <div id="root">
    <a href="/article/visited-quake">Old quake story</a>
    <a href="/article/big-quake-hits-japan">Japan shaken again</a>
  </div>
</body></html>
"""


class FakeResponse:
    def __init__(self, text: str, content_type: str = "text/html; charset=utf-8", status_code: int = 200) -> None:
        self.text = text
        self.status_code = status_code
        self.headers = {"Content-Type": content_type}

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, responses: dict[str, FakeResponse | Exception]) -> None:
        self.responses = responses
        self.requested: list[str] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requested.append(url)
        response = self.responses.get(url)
        if response is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(response, Exception):
            raise response
        return response

    def close(self) -> None:
        pass


def test_candidate_links_filter_by_container_and_keyword() -> None:
    page_crawler = crawler.PageCrawler(session=FakeSession({}))

    links = page_crawler.candidate_links(SEED, SEED_HTML)

    assert links == [
        "https://news.example.com/article/big-quake-hits-japan",
        "https://news.example.com/article/aftershocks",
        "https://news.example.com/article/visited-quake",
    ]


def test_candidate_links_skip_ignored_urls() -> None:
    config = crawler.CrawlerConfig(ignored_urls={"https://news.example.com/article/visited-quake"})
    page_crawler = crawler.PageCrawler(config, session=FakeSession({}))

    links = page_crawler.candidate_links(SEED, SEED_HTML)

    assert "https://news.example.com/article/visited-quake" not in links


def test_candidate_links_fall_back_to_whole_page() -> None:
    page_crawler = crawler.PageCrawler(session=FakeSession({}))
    html = '<html><body><a href="/quake-live">Live updates</a><a href="/sports">Sports</a></body></html>'

    assert page_crawler.candidate_links(SEED, html) == ["https://news.example.com/quake-live"]


def test_crawl_fetches_articles_and_tolerates_failures() -> None:
    session = FakeSession(
        {
            SEED: FakeResponse(SEED_HTML),
            "https://news.example.com/article/big-quake-hits-japan": FakeResponse("<body>Japan</body>"),
            "https://news.example.com/article/aftershocks": FakeResponse("%PDF", content_type="application/pdf"),
            "https://news.example.com/article/visited-quake": FakeResponse("gone", status_code=404),
            "https://down.example.com/": requests.Timeout("slow"),
        }
    )
    page_crawler = crawler.PageCrawler(session=session)

    pages = page_crawler.crawl([SEED, "https://down.example.com/"])

    assert pages == {"https://news.example.com/article/big-quake-hits-japan": "<body>Japan</body>"}
    assert SEED not in pages
