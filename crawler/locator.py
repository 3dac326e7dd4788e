"""
Page discovery for a monitored category.

Candidate paths are probed in list order with HEAD; list order is the
priority. Only when every probe misses is the homepage fetched and its
anchors scanned for category keywords.
"""

from typing import Iterable, Optional, Tuple

from crawler.errors import FetchError
from crawler.logger import logger
from crawler.url_utils import make_absolute
from extraction.text import fold, node_text, parse_html

_SKIP_SCHEMES = ("mailto:", "tel:", "javascript:", "#")


class PageLocator:

    def __init__(self, fetcher):
        self.fetcher = fetcher

    def locate(self, base_url: str, candidate_paths: Iterable[str],
               keywords: Iterable[str] = ()) -> Optional[str]:
        """
        Return the URL of the category page, or None when the site has none.
        Raises FetchError only when the homepage itself cannot be fetched.
        """
        url, _ = self.locate_page(base_url, candidate_paths, keywords)
        return url

    def locate_page(self, base_url: str, candidate_paths: Iterable[str],
                    keywords: Iterable[str] = ()) -> Tuple[Optional[str], Optional[str]]:
        """Like locate(), also returning the homepage HTML when the keyword scan fetched it."""
        base_url = base_url.rstrip("/")

        url = self.probe_candidates(base_url, candidate_paths)
        if url is not None:
            return url, None

        keywords = list(keywords)
        if not keywords:
            return None, None

        result = self.fetcher.fetch(base_url)
        if not result.ok:
            raise FetchError(base_url, result.error_type or "request_error", status=result.status)

        url = self.find_link(result.html, base_url, keywords)
        if url is not None:
            logger.info(f"[LOCATE] {base_url}: found via homepage link -> {url}")
        else:
            logger.info(f"[LOCATE] {base_url}: no page for keywords {keywords[:3]}...")
        return url, result.html

    def probe_candidates(self, base_url: str, candidate_paths: Iterable[str]) -> Optional[str]:
        for path in candidate_paths:
            url = base_url + path
            status = self.fetcher.probe(url)
            if status is not None and 200 <= status < 300:
                logger.info(f"[LOCATE] {base_url}: candidate {path} answered {status}")
                return url
        return None

    @staticmethod
    def find_link(html: str, page_url: str, keywords: Iterable[str]) -> Optional[str]:
        """
        First anchor whose visible text contains a keyword, keywords taken in
        priority order, anchors in document order. Matching ignores case and
        diacritics.
        """
        soup = parse_html(html)
        anchors = []
        for a in soup.find_all("a", href=True):
            href = a["href"].strip()
            if not href or href.lower().startswith(_SKIP_SCHEMES):
                continue
            anchors.append((fold(node_text(a)), href))

        for keyword in keywords:
            needle = fold(keyword)
            for text, href in anchors:
                if needle in text:
                    return make_absolute(href, page_url)
        return None
