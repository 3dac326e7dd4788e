"""Shared helpers for heuristic HTML parsing."""

import re
import unicodedata

from bs4 import BeautifulSoup

_WS = re.compile(r"\s+")


def parse_html(html):
    """Parse markup with lxml; broken or empty input yields an empty document."""
    return BeautifulSoup(html or "", "lxml")


def fold(text):
    """Lower-case and strip diacritics so 'Ceník' matches 'cenik'."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def clean_text(text):
    """Collapse runs of whitespace (including nbsp) into single spaces."""
    return _WS.sub(" ", (text or "").replace("\xa0", " ")).strip()


def node_text(node):
    if node is None:
        return ""
    return clean_text(node.get_text(" "))


def first_text(node, selector):
    """Text of the first descendant matching `selector`, or None when absent or blank."""
    found = node.select_one(selector)
    text = node_text(found)
    return text or None


def page_title(soup):
    if soup.title is None:
        return None
    return clean_text(soup.title.get_text()) or None


def visible_text(soup):
    """Page text without scripts, styles and templates."""
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    return clean_text(soup.get_text(" "))


def contains_any(text, needles):
    """Case-insensitive substring test over a vocabulary, in vocabulary order."""
    haystack = (text or "").lower()
    return [needle for needle in needles if needle.lower() in haystack]


def truncate(text, limit):
    if text is None or len(text) <= limit:
        return text
    return text[:limit] + "..."
