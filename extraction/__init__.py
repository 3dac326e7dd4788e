from extraction.models import Category
from extraction.portfolio import PortfolioStrategy
from extraction.pricing import PricingStrategy
from extraction.services import ServicesStrategy

# Static strategy table, one instance per category
STRATEGIES = {
    Category.PORTFOLIO: PortfolioStrategy(),
    Category.PRICING: PricingStrategy(),
    Category.SERVICES: ServicesStrategy(),
}


def get_strategy(category):
    """Strategy for a Category or its value ('pricing')."""
    if not isinstance(category, Category):
        category = Category(category)
    return STRATEGIES[category]


__all__ = ["Category", "STRATEGIES", "get_strategy"]
