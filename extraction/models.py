from enum import Enum
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Tuple


class Category(Enum):
    PORTFOLIO = "portfolio"
    PRICING = "pricing"
    SERVICES = "services"

    @property
    def label(self) -> str:
        return self.value.capitalize()


def _sorted(values) -> List[str]:
    return sorted(values or ())


@dataclass(frozen=True)
class PortfolioItem:
    title: str
    client: Optional[str] = None
    url: Optional[str] = None
    category: Optional[str] = None
    image: Optional[str] = None

    def to_dict(self):
        return {
            "title": self.title,
            "client": self.client,
            "url": self.url,
            "category": self.category,
            "image": self.image,
        }


@dataclass(frozen=True)
class PortfolioFacts:
    """
    Portfolio / references page.
    `items` keeps page order; `clients` and `categories` are unordered.
    """
    items: Tuple[PortfolioItem, ...] = ()
    clients: FrozenSet[str] = frozenset()
    categories: FrozenSet[str] = frozenset()
    layout_type: str = "unknown"
    has_filters: bool = False
    has_case_studies: bool = False
    page_title: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.items

    def to_dict(self):
        return {
            "items": [item.to_dict() for item in self.items],
            "clients": _sorted(self.clients),
            "categories": _sorted(self.categories),
            "layout_type": self.layout_type,
            "has_filters": self.has_filters,
            "has_case_studies": self.has_case_studies,
            "page_title": self.page_title,
        }

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(
            items=tuple(PortfolioItem(**item) for item in data.get("items") or ()),
            clients=frozenset(data.get("clients") or ()),
            categories=frozenset(data.get("categories") or ()),
            layout_type=data.get("layout_type") or "unknown",
            has_filters=bool(data.get("has_filters", False)),
            has_case_studies=bool(data.get("has_case_studies", False)),
            page_title=data.get("page_title"),
        )


@dataclass(frozen=True)
class PricingPackage:
    name: str
    price: Optional[float] = None
    billing_period: Optional[str] = None
    features: Tuple[str, ...] = ()

    def to_dict(self):
        return {
            "name": self.name,
            "price": self.price,
            "billing_period": self.billing_period,
            "features": list(self.features),
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            name=data["name"],
            price=data.get("price"),
            billing_period=data.get("billing_period"),
            features=tuple(data.get("features") or ()),
        )


@dataclass(frozen=True)
class PricingFacts:
    """Pricing page. Package order is meaningful (tiers are listed cheapest first)."""
    packages: Tuple[PricingPackage, ...] = ()
    pricing_type: str = "unknown"
    currency: str = "CZK"
    has_custom_quote: bool = False
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    page_title: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.packages and not self.has_custom_quote

    def to_dict(self):
        return {
            "packages": [pkg.to_dict() for pkg in self.packages],
            "pricing_type": self.pricing_type,
            "currency": self.currency,
            "has_custom_quote": self.has_custom_quote,
            "price_range": {"min": self.price_min, "max": self.price_max},
            "page_title": self.page_title,
        }

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        price_range = data.get("price_range") or {}
        return cls(
            packages=tuple(PricingPackage.from_dict(p) for p in data.get("packages") or ()),
            pricing_type=data.get("pricing_type") or "unknown",
            currency=data.get("currency") or "CZK",
            has_custom_quote=bool(data.get("has_custom_quote", False)),
            price_min=price_range.get("min"),
            price_max=price_range.get("max"),
            page_title=data.get("page_title"),
        )


@dataclass(frozen=True)
class ServiceItem:
    name: str
    description: Optional[str] = None

    def to_dict(self):
        return {"name": self.name, "description": self.description}


@dataclass(frozen=True)
class ServiceFacts:
    """Service offering. Tag sets come from the services page and the homepage."""
    services: Tuple[ServiceItem, ...] = ()
    technologies: FrozenSet[str] = frozenset()
    methodologies: FrozenSet[str] = frozenset()
    industries: FrozenSet[str] = frozenset()
    certifications: FrozenSet[str] = frozenset()
    page_title: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.services or self.technologies or self.methodologies
                    or self.industries or self.certifications)

    def to_dict(self):
        return {
            "services": [s.to_dict() for s in self.services],
            "technologies": _sorted(self.technologies),
            "methodologies": _sorted(self.methodologies),
            "industries": _sorted(self.industries),
            "certifications": _sorted(self.certifications),
            "page_title": self.page_title,
        }

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(
            services=tuple(ServiceItem(**s) for s in data.get("services") or ()),
            technologies=frozenset(data.get("technologies") or ()),
            methodologies=frozenset(data.get("methodologies") or ()),
            industries=frozenset(data.get("industries") or ()),
            certifications=frozenset(data.get("certifications") or ()),
            page_title=data.get("page_title"),
        )
