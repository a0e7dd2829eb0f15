"""Helpers for deriving the precomputed term sets stored with pages and annotations."""

from __future__ import annotations

import re
from urllib.parse import urlsplit

_WORD_RE = re.compile(r"\w+", re.UNICODE)

# URL fragments that carry no meaning as search terms
_URL_NOISE = {"http", "https", "www"}


def extract_terms(text: str | None) -> list[str]:
    """Split text into lower-cased word terms, deduplicated, in order of appearance."""
    if not text:
        return []
    return list(dict.fromkeys(m.group(0) for m in _WORD_RE.finditer(text.lower())))


def extract_url_terms(url: str) -> list[str]:
    """Split a URL into its word terms, dropping scheme and www noise."""
    return [t for t in extract_terms(url) if t not in _URL_NOISE]


def extract_domain(url: str) -> str:
    """Return the host of a URL without any leading 'www.'.

    Accepts normalized URLs without a scheme (e.g. 'test.com/a').
    """
    if "://" not in url:
        url = "http://" + url
    host = urlsplit(url).hostname or ""
    if host.startswith("www."):
        host = host[4:]
    return host
