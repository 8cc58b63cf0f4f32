import re
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

HEIGHT_RE = re.compile(r"(\d+)\s*(?:feet|foot|ft)\s*(\d+)\s*(?:inches|inch|in)", re.IGNORECASE)
WEIGHT_RE = re.compile(r"weighs.*?(\d+)\s*(?:pounds|lbs)", re.IGNORECASE)
WINGSPAN_RE = re.compile(r"wingspan(?:\s+of)?\s+(\d+)\s*(?:feet|foot|ft)\s*(\d+)\s*(?:inches|inch|in)", re.IGNORECASE)
BUILD_RE = re.compile(r"(\w+\s+\w+(?:\s+\w+)?)\s+Build")


def clean_text(s: str | None) -> str | None:
    if s is None:
        return None
    s = re.sub(r"\s+", " ", s.strip())
    return s or None


def normalize_name(name: str | None) -> str:
    """Identity key of a player name: trimmed, whitespace collapsed, case-folded."""
    return " ".join((name or "").split()).casefold()


def parse_int(s: str | None) -> int | None:
    if not s:
        return None
    m = re.search(r"-?\d+", s.replace(".", ""))
    return int(m.group(0)) if m else None


def parse_rating(s: str | None) -> int | None:
    """Ratings are integers 0-99; anything else counts as missing."""
    value = parse_int(s)
    if value is None or not 0 <= value <= 99:
        return None
    return value


def soup_from_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def slugify(value: str | None) -> str:
    v = re.sub(r"[^a-z0-9]+", "-", (value or "").lower())
    return v.strip("-")


def slug_from_url(url: str | None, fallback_name: str | None = None) -> str:
    # e.g. https://www.2kratings.com/lebron-james -> lebron-james
    if url:
        path = urlparse(url).path.rstrip("/")
        last = path.rsplit("/", 1)[-1] if path else ""
        if last:
            return last
    return slugify(fallback_name)


def absolute_url(base_url: str, href: str | None) -> str | None:
    if not href:
        return None
    return urljoin(base_url.rstrip("/") + "/", href)


def camel_case_label(label: str | None) -> str:
    """'Mid-Range Shot' -> 'midRangeShot', 'Shot IQ' -> 'shotIQ'."""
    words = re.findall(r"[A-Za-z0-9]+", label or "")
    if not words:
        return ""
    head = words[0].lower()
    tail = [w if w.isupper() else w[:1].upper() + w[1:].lower() for w in words[1:]]
    return head + "".join(tail)


def format_height(text: str | None) -> str | None:
    m = HEIGHT_RE.search(text or "")
    return f"{m.group(1)}'{m.group(2)}\"" if m else None


def format_weight(text: str | None) -> str | None:
    m = WEIGHT_RE.search(text or "")
    return f"{m.group(1)} lbs" if m else None


def format_wingspan(text: str | None) -> str | None:
    m = WINGSPAN_RE.search(text or "")
    return f"{m.group(1)}'{m.group(2)}\"" if m else None


def extract_build(text: str | None) -> str | None:
    m = BUILD_RE.search(text or "")
    return clean_text(m.group(1)) if m else None
