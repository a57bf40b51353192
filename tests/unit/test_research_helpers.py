"""Unit tests for research prompt building and content retrieval (no network)."""

import pytest
import requests

from jobsmith.contexts.research import (
    ContentRetriever,
    build_company_research_prompt,
    entry_to_content,
    extract_company_name,
    extract_text,
)

PAGE = """
<html><head><style>p { color: red }</style><script>var x = 1;</script></head>
<body>
  <nav><p>Navigation links that are long enough to count as a paragraph</p></nav>
  <p>Acme Robotics is an American company that builds industrial robot arms.<sup>[1]</sup></p>
  <p>Short.</p>
  <p>The company was founded in 2009 and is headquartered in Austin, Texas.</p>
</body></html>
"""


class FakeResponse:
    def __init__(self, text, status=200):
        self.text = text
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.urls = []

    def get(self, url, headers=None, timeout=None):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.mark.unit
def test_extract_text_keeps_body_paragraphs():
    """Test that scripts, nav, footnotes, and short paragraphs are dropped."""
    text = extract_text(PAGE)

    assert text.startswith("Acme Robotics is an American company")
    assert "[1]" not in text
    assert "Navigation" not in text
    assert "Short." not in text
    assert "var x" not in text
    assert "\n\nThe company was founded in 2009" in text


@pytest.mark.unit
def test_extract_text_caps_length():
    """Test that extracted content is capped."""
    assert len(extract_text(PAGE, max_chars=20)) == 20
    assert extract_text("") == ""


@pytest.mark.unit
def test_retriever_builds_url_and_extracts():
    """Test URL templating and successful retrieval."""
    session = FakeSession(FakeResponse(PAGE))
    retriever = ContentRetriever("https://example.test/wiki/{name}", session=session)

    text = retriever.fetch(" Acme Robotics ")

    assert session.urls == ["https://example.test/wiki/Acme_Robotics"]
    assert "industrial robot arms" in text


@pytest.mark.unit
@pytest.mark.parametrize(
    "session",
    [
        FakeSession(FakeResponse("", status=404)),
        FakeSession(error=requests.Timeout("read timed out")),
        FakeSession(error=requests.ConnectionError("refused")),
    ],
)
def test_retriever_failures_yield_empty_content(session):
    """Test that retrieval failures never raise."""
    assert ContentRetriever("https://example.test/{name}", session=session).fetch("Acme") == ""


@pytest.mark.unit
def test_research_prompt_with_context_and_content():
    """Test that hints and supporting content are included."""
    prompt = build_company_research_prompt(
        "Acme Robotics",
        "Acme builds arms.",
        {"industry": "Robotics", "job_description": "Build pipelines."},
    )

    assert prompt.startswith("Research the company: Acme Robotics")
    assert "Industry hint: Robotics" in prompt
    assert "Job posting excerpt:\nBuild pipelines." in prompt
    assert "Supporting content:\nAcme builds arms." in prompt
    assert "COMPANY_NOT_FOUND" in prompt


@pytest.mark.unit
def test_research_prompt_without_content():
    """Test the note used when nothing was retrieved."""
    prompt = build_company_research_prompt("Acme")
    assert "No supporting content was retrieved" in prompt


@pytest.mark.unit
@pytest.mark.parametrize(
    "title, description, expected",
    [
        ("Data Engineer at Acme Robotics", None, "Acme Robotics"),
        ("Data Engineer at Acme Robotics - Remote", None, "Acme Robotics"),
        ("Data Engineer", "About Initech:\nWe make TPS reports.", "Initech"),
        ("Data Engineer", "Globex Corporation is hiring engineers.", "Globex Corporation"),
        ("Data Engineer", "Great team, great pay.", None),
    ],
)
def test_extract_company_name(title, description, expected):
    """Test company name extraction from job titles and descriptions."""
    assert extract_company_name(title, description) == expected


@pytest.mark.unit
def test_entry_to_content_flattens_company_data():
    """Test that a stored entry flattens to canonical content with cacheHit set."""
    entry = {
        "companyName": "Acme",
        "size": "51-200",
        "companyData": {"mission": "Robots", "leadership": [{"name": "Jane"}]},
        "news": [{"title": "Launch"}],
        "cachedAt": "2025-11-20T12:00:00+00:00",
    }
    content = entry_to_content(entry)

    assert content["mission"] == "Robots"
    assert content["leadership"] == [{"name": "Jane"}]
    assert content["products"] == []
    assert content["news"] == [{"title": "Launch"}]
    assert content["cacheHit"] is True
    assert content["cachedAt"] == "2025-11-20T12:00:00+00:00"
