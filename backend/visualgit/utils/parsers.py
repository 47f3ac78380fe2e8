"""Turn uploaded lesson material into normalized text.

Supported input types: PDF and DOCX uploads (`parse_document`) and HTML
pages from a short list of documentation sites (`extract_from_url`). Both
return a dictionary with `title`, `content` and `metadata` (`source`, `type`,
`word_count`, `extracted_at`) which the lessons endpoint sends back as
`ExtractedContent`.
"""

import re
from datetime import datetime, timezone
from typing import Dict, Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from .pdf_text import PdfTextError, extract_file_text

SUPPORTED_TYPES = {"pdf", "docx"}
TITLE_SKIP_WORDS = ("table of contents", "index")

ALLOWED_DOMAINS = (
    "git-scm.com",
    "github.com",
    "atlassian.com",
    "stackoverflow.com",
    "dev.to",
    "medium.com",
    "freecodecamp.org",
)
URL_TIMEOUT_SECONDS = 30.0
URL_MAX_REDIRECTS = 5
URL_USER_AGENT = "Mozilla/5.0 (compatible; Git-Learning-Bot/1.0)"
STRIPPED_SELECTORS = ("script", "style", "nav", "header", "footer", "aside", ".advertisement", ".ads", ".sidebar")
CONTENT_SELECTORS = ("main", "article", ".content", ".post-content", ".entry-content")


def parse_document(file_bytes: bytes, filename: str) -> Dict:
    """Extract, clean and describe the text of a PDF or DOCX upload."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in SUPPORTED_TYPES:
        raise PdfTextError("Unsupported file extension for extraction")
    raw = extract_file_text(file_bytes, ext)
    content = clean_text(raw)
    title = extract_title(raw) or ("PDF Document" if ext == "pdf" else "DOCX Document")
    return {
        "title": title,
        "content": content,
        "metadata": {
            "source": f"uploaded-{ext}",
            "type": ext,
            "word_count": count_words(content),
            "extracted_at": datetime.now(timezone.utc),
        },
    }


def clean_text(text: str) -> str:
    """Collapse runs of spaces inside lines and keep at most one blank line between paragraphs."""
    lines = [re.sub(r"\s+", " ", line).strip() for line in text.splitlines()]
    joined = "\n".join(lines)
    return re.sub(r"\n{3,}", "\n\n", joined).strip()


def extract_title(text: str) -> Optional[str]:
    """Guess a title from the first few non-empty lines.

    The first line of reasonable length (11-99 chars) that does not look
    like a table of contents wins; otherwise the first line, cut to 100
    characters.
    """
    lines = [l.strip() for l in text.splitlines() if l.strip()]
    if not lines:
        return None
    for line in lines[:5]:
        lower = line.lower()
        if 10 < len(line) < 100 and not any(w in lower for w in TITLE_SKIP_WORDS):
            return line
    return lines[0][:100]


def count_words(text: str) -> int:
    return len(text.split())


def build_http_client() -> httpx.Client:
    return httpx.Client(
        timeout=URL_TIMEOUT_SECONDS,
        follow_redirects=True,
        max_redirects=URL_MAX_REDIRECTS,
        headers={"User-Agent": URL_USER_AGENT},
    )


def is_allowed_host(host: str) -> bool:
    host = host.lower()
    return any(host == domain or host.endswith("." + domain) for domain in ALLOWED_DOMAINS)


def extract_from_url(url: str) -> Dict:
    """Fetch an HTML page from an allow-listed site and extract its main text.

    Page chrome (scripts, navigation, sidebars, adverts) is dropped; the
    content comes from the first `main`/`article`-like container, or the
    whole body when there is none.
    """
    host = urlparse(url).hostname or ""
    if not is_allowed_host(host):
        raise PdfTextError(f"Domain {host} is not in the allowed list")
    try:
        with build_http_client() as client:
            response = client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise PdfTextError(f"Failed to extract content from URL: {e}")

    soup = BeautifulSoup(response.text, "lxml")
    for element in soup.select(", ".join(STRIPPED_SELECTORS)):
        element.decompose()

    heading = soup.find("h1")
    title = heading.get_text(strip=True) if heading else ""
    if not title and soup.title:
        title = soup.title.get_text(strip=True)

    container = None
    for selector in CONTENT_SELECTORS:
        container = soup.select_one(selector)
        if container is not None:
            break
    if container is None:
        container = soup.body or soup
    content = clean_text(container.get_text(separator="\n"))
    return {
        "title": title or "Untitled Document",
        "content": content,
        "metadata": {
            "source": url,
            "type": "url",
            "word_count": count_words(content),
            "extracted_at": datetime.now(timezone.utc),
        },
    }
