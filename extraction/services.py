"""
Service offering extraction.
Detects new services, removed services and technology stack changes.
Tag vocabularies are matched over the services page and the homepage.
"""

from typing import List, Optional

from detection.models import FieldKind, FieldValue
from extraction.base import CategoryStrategy
from extraction.models import Category, ServiceFacts, ServiceItem
from extraction.text import contains_any, first_text, node_text, page_title, parse_html, truncate, visible_text

SERVICE_SELECTORS = (
    'div[class*="service"]',
    'div[class*="sluzba"]',
    'section[class*="service"]',
    'article[class*="service"]',
    '[class*="service-item"]',
)

TECHNOLOGIES = (
    # Frontend
    "React", "Vue", "Angular", "Svelte", "Next.js", "Nuxt",
    "JavaScript", "TypeScript", "jQuery",
    # Backend
    "PHP", "Laravel", "Symfony", "Node.js", "Python", "Django", "Ruby on Rails",
    "Java EE", "Jakarta EE", "Spring Boot", ".NET", "C#", "Golang",
    # CMS
    "WordPress", "Drupal", "Joomla", "Strapi", "Contentful",
    # E-commerce
    "WooCommerce", "Shopify", "Magento", "PrestaShop", "Shoptet",
    # Database
    "MySQL", "PostgreSQL", "MongoDB", "Redis",
    # Cloud
    "Amazon Web Services", "Azure", "Google Cloud", "DigitalOcean",
    # DevOps
    "Docker", "Kubernetes", "CI/CD", "Jenkins", "GitHub Actions",
    # Design
    "Figma", "Sketch", "Adobe XD", "Photoshop", "Illustrator",
)

METHODOLOGIES = (
    "Agile", "Scrum", "Kanban", "Waterfall",
    "Design Thinking", "Lean UX", "Lean Startup", "DevOps",
    "Test-Driven", "TDD", "BDD",
    "CI/CD", "Continuous Integration",
)

# Word stem -> industry label
INDUSTRIES = (
    ("e-commerce", "E-commerce"),
    ("e-shop", "E-commerce"),
    ("eshop", "E-commerce"),
    ("finan", "Finance"),
    ("bank", "Finance"),
    ("zdravot", "Healthcare"),
    ("medical", "Healthcare"),
    ("nemovit", "Real Estate"),
    ("reality", "Real Estate"),
    ("vzdělá", "Education"),
    ("škol", "Education"),
    ("právn", "Legal"),
    ("advokát", "Legal"),
    ("restaur", "Restaurant"),
    ("gastro", "Restaurant"),
    ("automotive", "Automotive"),
    ("autoservis", "Automotive"),
    ("autosalon", "Automotive"),
)

CERTIFICATIONS = (
    "Google Partner", "Google Ads", "Google Analytics",
    "Meta Partner", "Facebook Partner",
    "Shopify Partner", "Shopify Plus",
    "ISO 27001", "ISO 9001",
    "Microsoft Partner", "AWS Partner",
    "HubSpot Partner", "Salesforce Partner",
)

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_HEADING_SERVICES = 20


class ServicesStrategy(CategoryStrategy):
    category = Category.SERVICES
    candidate_paths = (
        "/sluzby",
        "/služby",
        "/services",
        "/co-delame",
        "/nase-sluzby",
    )
    keywords = ("služby", "services", "co děláme", "nabídka")
    homepage_fallback = True
    needs_homepage = True

    def extract(self, html, page_url, homepage_html=None) -> ServiceFacts:
        soup = parse_html(html)
        home_soup = parse_html(homepage_html) if homepage_html else None

        services = self.extract_services(soup)
        if not services and home_soup is not None:
            services = self.extract_services(home_soup)

        title = page_title(soup)
        text = visible_text(soup)
        if home_soup is not None:
            text = text + " " + visible_text(home_soup)

        return ServiceFacts(
            services=tuple(services),
            technologies=frozenset(contains_any(text, TECHNOLOGIES)),
            methodologies=frozenset(contains_any(text, METHODOLOGIES)),
            industries=frozenset(self.match_industries(text)),
            certifications=frozenset(contains_any(text, CERTIFICATIONS)),
            page_title=title,
        )

    def extract_services(self, soup) -> List[ServiceItem]:
        for selector in SERVICE_SELECTORS:
            services = []
            for node in soup.select(selector):
                service = self.parse_service(node)
                if service is not None:
                    services.append(service)
            if services:
                return services

        return self.extract_services_from_headings(soup)

    @staticmethod
    def parse_service(node) -> Optional[ServiceItem]:
        name = first_text(node, 'h2, h3, h4, [class*="title"]')
        if not name or len(name) > MAX_NAME_LENGTH:
            return None

        description = first_text(node, 'p, [class*="description"]')
        return ServiceItem(name=name, description=truncate(description, MAX_DESCRIPTION_LENGTH))

    @staticmethod
    def extract_services_from_headings(soup) -> List[ServiceItem]:
        services = []
        for heading in soup.select("section h2, section h3"):
            text = node_text(heading)
            if text and len(text) < MAX_NAME_LENGTH:
                services.append(ServiceItem(name=text))
            if len(services) >= MAX_HEADING_SERVICES:
                break
        return services

    @staticmethod
    def match_industries(text) -> List[str]:
        haystack = (text or "").lower()
        return [label for stem, label in INDUSTRIES if stem in haystack]

    def metrics(self, facts: ServiceFacts):
        return {
            "services_count": len(facts.services),
            "technologies_count": len(facts.technologies),
            "industries_count": len(facts.industries),
            "methodologies_count": len(facts.methodologies),
            "certifications_count": len(facts.certifications),
        }

    def fields(self, facts: ServiceFacts):
        names = tuple(s.name for s in facts.services)
        return {
            "page_title": FieldValue(FieldKind.STRING, facts.page_title),
            "services": FieldValue(FieldKind.NAMED_SET, frozenset(names)),
            "services_count": FieldValue(FieldKind.COUNT, len(facts.services), basis=names),
            "service_details": FieldValue(FieldKind.LIST, tuple(s.to_dict() for s in facts.services)),
            "technologies": FieldValue(FieldKind.NAMED_SET, facts.technologies),
            "certifications": FieldValue(FieldKind.NAMED_SET, facts.certifications),
            "methodologies": FieldValue(FieldKind.SET, facts.methodologies),
            "industries": FieldValue(FieldKind.SET, facts.industries),
        }

    def facts_from_dict(self, data) -> ServiceFacts:
        return ServiceFacts.from_dict(data)
