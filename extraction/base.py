from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from detection.models import FieldValue
from extraction.models import Category


class CategoryStrategy(ABC):
    """
    Capability interface of one monitored category.
    A strategy knows where the category page usually lives, how to turn its
    HTML into Facts, and how those Facts are compared.
    """

    category: Category
    # Probed in order; the first 2xx wins
    candidate_paths: Tuple[str, ...] = ()
    # Anchor text that identifies the page when every candidate misses
    keywords: Tuple[str, ...] = ()
    # Analyse the homepage itself when no dedicated page exists
    homepage_fallback: bool = False
    # Also read the homepage next to the located page
    needs_homepage: bool = False

    @abstractmethod
    def extract(self, html: str, page_url: str, homepage_html: Optional[str] = None):
        """Parse HTML into Facts. Malformed or missing markup yields partial or empty Facts."""
        pass

    @abstractmethod
    def metrics(self, facts) -> Dict[str, Any]:
        """Cheap aggregate projection for reporting (not hashed)."""
        pass

    @abstractmethod
    def fields(self, facts) -> Dict[str, FieldValue]:
        """Comparable view of the Facts consumed by the ChangeClassifier."""
        pass

    @abstractmethod
    def facts_from_dict(self, data: Dict[str, Any]):
        """Rebuild Facts from their stored JSON form."""
        pass
