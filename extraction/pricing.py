"""
Pricing page extraction.
Detects price changes, new packages and pricing structure changes.
"""

import re
from typing import List, Optional

from detection.models import FieldKind, FieldValue
from extraction.base import CategoryStrategy
from extraction.models import Category, PricingFacts, PricingPackage
from extraction.text import first_text, fold, node_text, page_title, parse_html, visible_text

PACKAGE_SELECTORS = (
    'div[class*="pricing-card"]',
    'div[class*="price-card"]',
    'div[class*="pricing-table"] div[class*="col"]',
    'div[class*="package"]',
    'div[class*="plan"]',
    'table[class*="pricing"] tr',
)

_CURRENCY = r"(Kč|CZK|€|EUR|\$|USD)"
PRICE_AFTER = re.compile(r"(\d[\d\s]*(?:[.,]\d+)?)\s*" + _CURRENCY, re.IGNORECASE)
PRICE_BEFORE = re.compile(r"(€|\$)\s*(\d[\d\s]*(?:[.,]\d+)?)")
PRICE_MARKERS = re.compile(r"Kč|CZK|€|EUR|\$|USD")

HOURLY = re.compile(r"\bhod\b|\bhodinu?\b|/h\b|hour", re.IGNORECASE)
PROJECT = re.compile(r"od\s+\d|from\s+\d|projekt|project", re.IGNORECASE)

PERIODS = (
    ("month", re.compile(r"mesic|month")),
    ("year", re.compile(r"\brok|year|annual|rocne")),
    ("project", re.compile(r"projekt|project")),
)

CUSTOM_QUOTE_PHRASES = ("na miru", "individualni", "custom", "on request", "na vyzadani")

MAX_FEATURES = 20
MAX_FEATURE_LENGTH = 200
MAX_TEXT_PACKAGES = 10


def parse_price(price_text: str) -> Optional[float]:
    """
    Keep only digits, commas and dots; a comma is a decimal separator.
    Returns None (never 0) when nothing usable is left.
    """
    price = re.sub(r"[^0-9,.]", "", price_text or "")
    price = price.replace(",", ".")
    if not price:
        return None
    try:
        return float(price)
    except ValueError:
        return None


def find_price(text: str) -> Optional[float]:
    """First amount written next to a currency marker, in either order."""
    match = PRICE_AFTER.search(text or "")
    if match:
        return parse_price(match.group(1))
    match = PRICE_BEFORE.search(text or "")
    if match:
        return parse_price(match.group(2))
    return None


class PricingStrategy(CategoryStrategy):
    category = Category.PRICING
    candidate_paths = (
        "/cenik",
        "/ceník",
        "/pricing",
        "/ceny",
        "/prices",
        "/sluzby",
        "/services",
    )
    keywords = ("ceník", "ceny", "pricing", "prices")

    def extract(self, html, page_url, homepage_html=None) -> PricingFacts:
        soup = parse_html(html)

        pricing_type = self.detect_pricing_type_structure(soup)
        packages = self.extract_packages(soup)
        title = page_title(soup)

        text = visible_text(soup)
        if pricing_type is None:
            pricing_type = self.detect_pricing_type_text(text)

        folded = fold(text)
        prices = [p.price for p in packages if p.price]

        return PricingFacts(
            packages=tuple(packages),
            pricing_type=pricing_type,
            currency=self.detect_currency(text),
            has_custom_quote=any(phrase in folded for phrase in CUSTOM_QUOTE_PHRASES),
            price_min=min(prices) if prices else None,
            price_max=max(prices) if prices else None,
            page_title=title,
        )

    @staticmethod
    def detect_pricing_type_structure(soup) -> Optional[str]:
        if soup.select_one('[class*="pricing"]') is not None:
            return "tiered"
        return None

    @staticmethod
    def detect_pricing_type_text(text: str) -> str:
        if HOURLY.search(text):
            return "hourly"
        if PROJECT.search(text):
            return "project"
        return "fixed"

    @staticmethod
    def detect_currency(text: str) -> str:
        if re.search(r"€|\bEUR\b", text):
            return "EUR"
        if re.search(r"\$|\bUSD\b", text):
            return "USD"
        return "CZK"

    def extract_packages(self, soup) -> List[PricingPackage]:
        for selector in PACKAGE_SELECTORS:
            packages = []
            for node in soup.select(selector):
                package = self.parse_package(node)
                if package is not None:
                    packages.append(package)
            if packages:
                return packages

        return self.extract_prices_from_text(soup)

    @staticmethod
    def parse_package(node) -> Optional[PricingPackage]:
        name = first_text(node, 'h2, h3, h4, [class*="title"]')
        if not name:
            return None

        price = None
        price_text = first_text(node, '[class*="price"], [class*="amount"]')
        if price_text:
            price = find_price(price_text)
            if price is None:
                price = parse_price(price_text)

        node_content = node_text(node)
        if price is None:
            price = find_price(node_content)

        period = None
        folded = fold(node_content)
        for candidate, pattern in PERIODS:
            if pattern.search(folded):
                period = candidate
                break

        features = []
        for feature_node in node.select('li, [class*="feature"]'):
            feature = node_text(feature_node)
            if feature and len(feature) < MAX_FEATURE_LENGTH and feature not in features:
                features.append(feature)

        return PricingPackage(
            name=name,
            price=price,
            billing_period=period,
            features=tuple(features[:MAX_FEATURES]),
        )

    @staticmethod
    def extract_prices_from_text(soup) -> List[PricingPackage]:
        """Fallback: any element whose own text carries a localized price."""
        packages = []
        seen = set()
        for string in soup.find_all(string=PRICE_MARKERS):
            element = string.parent
            if element is None or element.name in ("script", "style", "title") or id(element) in seen:
                continue
            seen.add(id(element))

            text = node_text(element)
            price = find_price(text)
            if price is None or price <= 0:
                continue

            name = None
            if element.parent is not None:
                name = first_text(element.parent, "h2, h3, h4")
            if name is None:
                name = text[:50]

            packages.append(PricingPackage(name=name, price=price))
            if len(packages) >= MAX_TEXT_PACKAGES:
                break
        return packages

    def metrics(self, facts: PricingFacts):
        return {
            "packages_count": len(facts.packages),
            "pricing_type": facts.pricing_type,
            "price_min": facts.price_min,
            "price_max": facts.price_max,
            "currency": facts.currency,
            "has_custom_quote": facts.has_custom_quote,
        }

    def fields(self, facts: PricingFacts):
        names = tuple(p.name for p in facts.packages)
        view = {
            "page_title": FieldValue(FieldKind.STRING, facts.page_title),
            "pricing_type": FieldValue(FieldKind.CATEGORICAL, facts.pricing_type, high_impact=True),
            "currency": FieldValue(FieldKind.CATEGORICAL, facts.currency),
            "has_custom_quote": FieldValue(FieldKind.CATEGORICAL, facts.has_custom_quote),
            "price_min": FieldValue(FieldKind.PRICE, facts.price_min),
            "price_max": FieldValue(FieldKind.PRICE, facts.price_max),
            "packages_count": FieldValue(FieldKind.COUNT, len(facts.packages), basis=names),
            "packages": FieldValue(FieldKind.LIST, tuple(p.to_dict() for p in facts.packages)),
        }
        for package in facts.packages:
            key = f"package_price_{package.name}"
            if package.price is not None and key not in view:
                view[key] = FieldValue(FieldKind.PRICE, package.price, paired=True)
        return view

    def facts_from_dict(self, data) -> PricingFacts:
        return PricingFacts.from_dict(data)
