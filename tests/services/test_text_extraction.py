from __future__ import annotations

import pytest
from bs4 import BeautifulSoup

from src.services import text_extraction
from src.services.errors import NoBodyError, ParseError


def test_extract_text_drops_scripts_styles_and_head() -> None:
    html = """
    <html>
      <head><title>Ignored title</title><style>body { color: red; }</style></head>
      <body>
        <h1>Quake strikes</h1>
        <script>var x = "should vanish";</script>
        <p>At least three people died.</p>
      </body>
    </html>
    """

    text = text_extraction.extract_text(html)

    assert text == "Quake strikes At least three people died."
    assert "vanish" not in text
    assert "Ignored" not in text


def test_extract_text_concatenates_adjacent_text_nodes() -> None:
    html = "<html><body><p>Hello <b>world</b></p><span>again</span></body></html>"

    assert text_extraction.extract_text(html) == "Hello worldagain"


def test_extract_text_strips_symbols_and_keeps_punctuation() -> None:
    html = "<body><p>Magnitude 6.1 quake ❤ costs $5 + more, officials said.</p></body>"

    assert text_extraction.extract_text(html) == "Magnitude 6.1 quake costs 5 more, officials said."


def test_extract_text_skips_comments() -> None:
    html = "<body><!-- tracking pixel --><p>Shaking felt</p></body>"

    assert text_extraction.extract_text(html) == "Shaking felt"


def test_extract_text_wraps_fragments_in_a_body() -> None:
    assert text_extraction.extract_text("<p>fragment only</p>") == "fragment only"


def test_extract_text_without_body_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    # html.parser keeps the markup as written and never adds a <body>.
    monkeypatch.setattr(text_extraction, "HTML_PARSER", "html.parser")

    with pytest.raises(NoBodyError):
        text_extraction.extract_text("<p>fragment only</p>")


def test_extract_text_rejects_non_text_input() -> None:
    with pytest.raises(ParseError):
        text_extraction.extract_text(b"<body>bytes</body>")  # type: ignore[arg-type]


def test_extract_text_of_empty_body_is_empty() -> None:
    assert text_extraction.extract_text("<html><body>  \n\n </body></html>") == ""
    assert text_extraction.extract_text("") == ""


def test_collapse_whitespace_removes_blank_lines_and_runs() -> None:
    raw = "  first line \n\n\n   second\t\tline  \n  "

    assert text_extraction.collapse_whitespace(raw) == "first line second line"


def test_sanitize_text_keeps_letters_digits_punctuation_whitespace() -> None:
    assert text_extraction.sanitize_text("Ciudad de México, 7.2!©™") == "Ciudad de México, 7.2!"


def test_extract_text_is_idempotent_on_its_output() -> None:
    html = "<html><body><div>Strong quake\n\n  near <i>Lima</i>, Peru; 7.0 magnitude.</div></body></html>"

    once = text_extraction.extract_text(html)

    assert once == "Strong quake near Lima, Peru; 7.0 magnitude."
    assert text_extraction.extract_text(once) == once


def test_extract_text_drops_inline_script_from_article() -> None:
    html = (
        "<html><body><script>evil()</script>"
        "<p>M4.7 near Reno, Nevada on June 3 2024</p></body></html>"
    )

    text = text_extraction.extract_text(html)

    assert "M4.7 near Reno, Nevada on June 3 2024" in text
    assert "evil" not in text
    assert text_extraction.extract_text(text) == text


def test_collect_text_handles_deeply_nested_markup() -> None:
    html = "<html><body>" + "<div>" * 3000 + "Hualien quake" + "</div>" * 3000 + "</body></html>"
    body = BeautifulSoup(html, "html.parser").find("body")

    assert text_extraction._collect_text(body) == "Hualien quake"
