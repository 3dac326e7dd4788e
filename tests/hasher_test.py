"""
Content hash determinism
"""

import unittest

from crawler.hasher import canonical_json, canonicalize, hash_facts
from extraction.models import (
    PortfolioFacts,
    PortfolioItem,
    PricingFacts,
    PricingPackage,
    ServiceFacts,
    ServiceItem,
)


class TestContentHash(unittest.TestCase):

    def test_same_facts_same_hash(self):
        facts = PortfolioFacts(
            items=(PortfolioItem("Web for Alfa", client="Alfa"),),
            clients=frozenset({"Alfa"}),
        )
        again = PortfolioFacts(
            items=(PortfolioItem("Web for Alfa", client="Alfa"),),
            clients=frozenset({"Alfa"}),
        )
        self.assertEqual(hash_facts(facts), hash_facts(again))
        self.assertEqual(len(hash_facts(facts)), 64)

    def test_set_order_does_not_change_hash(self):
        one = ServiceFacts(technologies=frozenset(["React", "PHP", "Docker"]))
        two = ServiceFacts(technologies=frozenset(["Docker", "React", "PHP"]))
        self.assertEqual(hash_facts(one), hash_facts(two))

        clients_a = PortfolioFacts(clients=frozenset(["Beta", "Alfa", "Gama"]))
        clients_b = PortfolioFacts(clients=frozenset(["Gama", "Beta", "Alfa"]))
        self.assertEqual(hash_facts(clients_a), hash_facts(clients_b))

    def test_item_order_changes_hash(self):
        first = PortfolioItem("First")
        second = PortfolioItem("Second")
        self.assertNotEqual(
            hash_facts(PortfolioFacts(items=(first, second))),
            hash_facts(PortfolioFacts(items=(second, first))),
        )

    def test_package_order_changes_hash(self):
        basic = PricingPackage("Basic", 1000.0)
        pro = PricingPackage("Pro", 2000.0)
        self.assertNotEqual(
            hash_facts(PricingFacts(packages=(basic, pro))),
            hash_facts(PricingFacts(packages=(pro, basic))),
        )

    def test_stored_form_hashes_like_extracted_form(self):
        facts = ServiceFacts(
            services=(ServiceItem("SEO", "Optimalizace"), ServiceItem("Weby")),
            technologies=frozenset({"PHP", "React"}),
        )
        restored = ServiceFacts.from_dict(facts.to_dict())
        self.assertEqual(hash_facts(restored), hash_facts(facts))

    def test_canonicalize(self):
        value = {"b": frozenset({3, 1, 2}), "a": [3, 1, 2]}
        self.assertEqual(canonicalize(value), {"a": [3, 1, 2], "b": [1, 2, 3]})
        self.assertEqual(canonical_json(value), '{"a":[3,1,2],"b":[1,2,3]}')


if __name__ == "__main__":
    unittest.main()
