"""
Best-effort external content retrieval for company research.

Fetches a public page about a company and reduces it to plain paragraphs the
model can use as supporting context. Retrieval never fails a lookup: timeouts,
HTTP errors, and parse problems all yield empty content.
"""

import os
import re
from typing import Optional
from urllib.parse import quote

import requests
from bs4 import BeautifulSoup
from dotenv import load_dotenv

from jobsmith.contexts.research.logger import _log_debug, _log_warning

load_dotenv()
RETRIEVAL_TIMEOUT_S = float(os.getenv("RETRIEVAL_TIMEOUT_S", "5"))
RESEARCH_SOURCE_URL = os.getenv("RESEARCH_SOURCE_URL", "https://en.wikipedia.org/wiki/{name}")

COMMON_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) jobsmith-research/0.1",
    "Accept-Language": "en-US,en;q=0.9",
}

# Upper bound on text handed to the prompt
MAX_CONTENT_CHARS = 4000


class ContentRetriever:
    """
    Fetches supporting text about a company.

    Args:
        url_template: URL with a ``{name}`` placeholder (default: RESEARCH_SOURCE_URL)
        timeout_s: Request timeout in seconds (default: RETRIEVAL_TIMEOUT_S)
        session: requests session (injectable for tests)
    """

    def __init__(
        self,
        url_template: str = None,
        timeout_s: float = None,
        session: Optional[requests.Session] = None,
    ):
        self.url_template = url_template or RESEARCH_SOURCE_URL
        self.timeout_s = RETRIEVAL_TIMEOUT_S if timeout_s is None else timeout_s
        self.session = session or requests.Session()

    def fetch(self, company_name: str) -> str:
        """
        Retrieve plain-text content about a company.

        Returns:
            Up to MAX_CONTENT_CHARS of text, or "" on any failure
        """
        url = self.url_template.format(name=quote(company_name.strip().replace(" ", "_")))
        try:
            response = self.session.get(url, headers=COMMON_HEADERS, timeout=self.timeout_s)
            response.raise_for_status()
        except requests.RequestException as e:
            _log_warning(f"Retrieval failed for {company_name!r}: {e}")
            return ""

        text = extract_text(response.text)
        _log_debug(f"Retrieved {len(text)} chars for {company_name!r}")
        return text


def extract_text(html: str, max_chars: int = MAX_CONTENT_CHARS) -> str:
    """
    Reduce an HTML page to its paragraph text.

    Scripts, styles, navigation, and footnote markers are removed. Paragraphs
    are joined with blank lines and the result is capped at max_chars.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "nav", "header", "footer", "aside", "sup"]):
        tag.decompose()

    paragraphs = []
    for element in soup.find_all("p"):
        text = element.get_text(separator=" ", strip=True)
        text = re.sub(r"\s+", " ", text)
        if len(text) > 40:
            paragraphs.append(text)

    content = "\n\n".join(paragraphs)
    return content[:max_chars]
