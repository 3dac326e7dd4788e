"""
Portfolio / references extraction.
Detects new clients, removed clients and portfolio structure changes.
"""

from typing import List, Optional

from detection.models import FieldKind, FieldValue
from extraction.base import CategoryStrategy
from extraction.models import Category, PortfolioFacts, PortfolioItem
from extraction.text import first_text, fold, node_text, page_title, parse_html, visible_text

# Most specific first; the first selector matching any node is the only one used
ITEM_SELECTORS = (
    'article[class*="portfolio"]',
    'div[class*="portfolio-item"]',
    'div[class*="project-item"]',
    'div[class*="work-item"]',
    'div[class*="reference-item"]',
    'li[class*="portfolio"]',
)

LAYOUT_SELECTORS = (
    ("grid", '[class*="grid"], [class*="masonry"]'),
    ("list", '[class*="list"]'),
    ("slider", '[class*="slider"], [class*="carousel"], [class*="swiper"]'),
)

CASE_STUDY_PHRASES = ("case study", "case studies", "pripadova studie", "pripadove studie")

MAX_GENERIC_ITEMS = 50


class PortfolioStrategy(CategoryStrategy):
    category = Category.PORTFOLIO
    candidate_paths = (
        "/portfolio",
        "/reference",
        "/references",
        "/nase-prace",
        "/projekty",
        "/work",
        "/projects",
        "/case-studies",
        "/realizace",
    )
    keywords = ("portfolio", "reference", "práce", "projekty", "realizace", "work", "projects")

    def extract(self, html, page_url, homepage_html=None) -> PortfolioFacts:
        soup = parse_html(html)

        items = self.extract_items(soup)
        clients = frozenset(item.client for item in items if item.client)
        categories = frozenset(item.category for item in items if item.category)

        has_filters = bool(soup.select('[class*="filter"], [class*="category"] a'))
        layout_type = self.detect_layout(soup)
        title = page_title(soup)

        has_case_studies = bool(soup.select('[class*="case-study"]'))
        if not has_case_studies:
            text = fold(visible_text(soup))
            has_case_studies = any(phrase in text for phrase in CASE_STUDY_PHRASES)

        return PortfolioFacts(
            items=tuple(items),
            clients=clients,
            categories=categories,
            layout_type=layout_type,
            has_filters=has_filters,
            has_case_studies=has_case_studies,
            page_title=title,
        )

    def extract_items(self, soup) -> List[PortfolioItem]:
        items = []
        for selector in ITEM_SELECTORS:
            nodes = soup.select(selector)
            if not nodes:
                continue
            for node in nodes:
                item = self.parse_item(node)
                if item is not None:
                    items.append(item)
            break

        if not items:
            items = self.extract_generic_items(soup)
        return items

    @staticmethod
    def parse_item(node) -> Optional[PortfolioItem]:
        title = first_text(node, 'h2, h3, h4, a[class*="title"]')
        if not title:
            return None

        link = node.find("a", href=True)
        image = node.find("img", src=True)

        return PortfolioItem(
            title=title,
            client=first_text(node, '[class*="client"], [class*="company"]'),
            url=link["href"].strip() if link else None,
            category=first_text(node, '[class*="category"], [class*="tag"]'),
            image=image["src"].strip() if image else None,
        )

    @staticmethod
    def extract_generic_items(soup) -> List[PortfolioItem]:
        """Any image-wrapped link titled by its image alt text or its own title attribute."""
        items = []
        for link in soup.find_all("a"):
            img = link.find("img")
            if img is None:
                continue
            title = (img.get("alt") or "").strip() or (link.get("title") or "").strip()
            if not title:
                continue
            items.append(PortfolioItem(
                title=title,
                url=(link.get("href") or "").strip() or None,
                image=(img.get("src") or "").strip() or None,
            ))
            if len(items) >= MAX_GENERIC_ITEMS:
                break
        return items

    @staticmethod
    def detect_layout(soup) -> str:
        for layout, selector in LAYOUT_SELECTORS:
            if soup.select_one(selector) is not None:
                return layout
        return "unknown"

    def metrics(self, facts: PortfolioFacts):
        return {
            "total_items": len(facts.items),
            "unique_clients": len(facts.clients),
            "categories_count": len(facts.categories),
            "has_filters": facts.has_filters,
            "has_case_studies": facts.has_case_studies,
            "layout_type": facts.layout_type,
        }

    def fields(self, facts: PortfolioFacts):
        return {
            "page_title": FieldValue(FieldKind.STRING, facts.page_title),
            "total_count": FieldValue(FieldKind.NUMERIC, len(facts.items)),
            "clients": FieldValue(FieldKind.NAMED_SET, facts.clients),
            "categories": FieldValue(FieldKind.SET, facts.categories),
            "items": FieldValue(FieldKind.LIST, tuple(item.to_dict() for item in facts.items)),
            "layout_type": FieldValue(FieldKind.CATEGORICAL, facts.layout_type),
            "has_filters": FieldValue(FieldKind.CATEGORICAL, facts.has_filters),
            "has_case_studies": FieldValue(FieldKind.CATEGORICAL, facts.has_case_studies),
        }

    def facts_from_dict(self, data) -> PortfolioFacts:
        return PortfolioFacts.from_dict(data)
