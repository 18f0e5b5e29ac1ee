"""
Synthetic Data Generator

Generates Superstore-shaped transactions for testing and development.
Includes:
- Markets, regions and countries, with region names that reuse market names
- A product catalog across categories and subcategories
- Orders with ship modes, discounts and loss-making lines
- Optional mis-filed rows matching the known correction cases
"""

import random
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import polars as pl
import structlog
from faker import Faker

from salesopt.config import get_settings
from salesopt.ingestion.batch_loader import TRANSACTION_SCHEMA

logger = structlog.get_logger(__name__)
settings = get_settings()


# =============================================================================
# CONFIGURATION
# =============================================================================

MARKETS: Dict[str, Tuple[List[str], List[str]]] = {
    "APAC": (["Oceania", "Southeast Asia", "North Asia", "Central Asia"],
             ["Australia", "China", "India", "Indonesia", "Japan", "Mongolia", "New Zealand"]),
    "EU": (["Central", "North", "South"],
           ["Austria", "France", "Germany", "Italy", "Spain", "United Kingdom"]),
    "US": (["East", "West", "Central", "South"], ["United States"]),
    "LATAM": (["Caribbean", "Central", "South"], ["Argentina", "Brazil", "Chile", "Cuba", "Mexico"]),
    "EMEA": (["EMEA"], ["Egypt", "Iran", "Israel", "Turkey", "Ukraine"]),
    "Africa": (["Africa"], ["Kenya", "Morocco", "Nigeria", "South Africa"]),
    "Canada": (["Canada"], ["Canada"]),
}

MARKET_WEIGHTS = {
    "APAC": 0.22, "EU": 0.20, "US": 0.20, "LATAM": 0.20,
    "EMEA": 0.08, "Africa": 0.08, "Canada": 0.02,
}

CATEGORIES: Dict[str, List[str]] = {
    "Furniture": ["Bookcases", "Chairs", "Furnishings", "Tables"],
    "Office Supplies": ["Appliances", "Art", "Binders", "Envelopes", "Fasteners",
                        "Labels", "Paper", "Storage", "Supplies"],
    "Technology": ["Accessories", "Copiers", "Machines", "Phones"],
}

SHIP_MODES = [
    ("Standard Class", 0.60, (4, 7), 1.0),
    ("Second Class", 0.20, (2, 5), 1.4),
    ("First Class", 0.15, (1, 3), 1.9),
    ("Same Day", 0.05, (0, 0), 2.5),
]

SEGMENTS = [("Consumer", 0.52), ("Corporate", 0.30), ("Home Office", 0.18)]
ORDER_PRIORITIES = [("Medium", 0.57), ("High", 0.30), ("Critical", 0.08), ("Low", 0.05)]
DISCOUNTS = [0.0, 0.0, 0.0, 0.0, 0.1, 0.15, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7]

STAPLES = "Staples"


# =============================================================================
# GENERATORS
# =============================================================================

class ProductCatalog:
    """Products per subcategory, plus the shared 'Staples' product"""

    def __init__(self, fake: Faker, rng: random.Random, per_subcategory: int = 6):
        self.products: List[Dict[str, str]] = []
        number = 10000000
        for category, subcategories in CATEGORIES.items():
            for subcategory in subcategories:
                for _ in range(per_subcategory):
                    number += rng.randint(1, 50)
                    self.products.append({
                        "product_id": f"{category[:3].upper()}-{subcategory[:2].upper()}-{number}",
                        "category": category,
                        "subcategory": subcategory,
                        "product_name": f"{fake.last_name()} {subcategory} {fake.bothify('??-###').upper()}",
                    })
        self.products.append({
            "product_id": f"OFF-FA-{number + 1}",
            "category": "Office Supplies",
            "subcategory": "Fasteners",
            "product_name": STAPLES,
        })

    def pick(self, rng: random.Random) -> Dict[str, str]:
        return rng.choice(self.products)


class TransactionGenerator:
    """
    Generate Superstore-shaped transaction rows.

    With inject_errors the output carries the mis-filings the correction
    rules target: Austria and Mongolia filed under EMEA, and Staples filed
    under Binders.

    Example:
        df = TransactionGenerator(seed=7).generate(2000)
    """

    def __init__(
        self,
        seed: int = 42,
        first_year: int = 2011,
        last_year: int = 2014,
        n_customers: int = 300,
        inject_errors: bool = True,
    ):
        self.rng = random.Random(seed)
        self.np_rng = np.random.default_rng(seed)
        self.fake = Faker()
        self.fake.seed_instance(seed)

        self.first_day = date(first_year, 1, 1)
        self.span_days = (date(last_year, 12, 31) - self.first_day).days
        self.inject_errors = inject_errors

        self.catalog = ProductCatalog(self.fake, self.rng)
        self.customers = self._customers(n_customers)

    def _customers(self, n: int) -> List[Tuple[str, str, str]]:
        customers = []
        for i in range(n):
            name = self.fake.name()
            initials = "".join(part[0] for part in name.split()[:2]).upper()
            segment = self.rng.choices([s for s, _ in SEGMENTS], weights=[w for _, w in SEGMENTS])[0]
            customers.append((f"{initials}-{10000 + i * 3}", name, segment))
        if self.inject_errors:
            # pairs of customer ids sharing one name
            for i in range(1, n, 50):
                customers[i] = (customers[i][0], customers[i - 1][1], customers[i][2])
        return customers

    def _market(self) -> Tuple[str, str, str]:
        market = self.rng.choices(list(MARKET_WEIGHTS), weights=list(MARKET_WEIGHTS.values()))[0]
        regions, countries = MARKETS[market]
        return market, self.rng.choice(regions), self.rng.choice(countries)

    def _misfile(self, row: Dict) -> Dict:
        if row["country"] in ("Austria", "Mongolia") and self.rng.random() < 0.2:
            row["market"] = "EMEA"
            row["region"] = "EMEA"
        if row["product_name"] == STAPLES and self.rng.random() < 0.3:
            row["subcategory"] = "Binders"
        return row

    def generate(self, n: int = 1000) -> pl.DataFrame:
        """Generate n transaction rows"""
        rows = []
        modes = [m for m, _, _, _ in SHIP_MODES]
        mode_weights = [w for _, w, _, _ in SHIP_MODES]
        mode_info = {m: (days, factor) for m, _, days, factor in SHIP_MODES}

        for i in range(n):
            market, region, country = self._market()
            product = self.catalog.pick(self.rng)
            customer_id, customer_name, segment = self.rng.choice(self.customers)

            order_date = self.first_day + timedelta(days=self.rng.randint(0, self.span_days))
            ship_mode = self.rng.choices(modes, weights=mode_weights)[0]
            (low, high), cost_factor = mode_info[ship_mode]
            ship_date = order_date + timedelta(days=self.rng.randint(low, high))

            quantity = self.rng.randint(1, 14)
            discount = self.rng.choice(DISCOUNTS)
            sales = round(float(self.np_rng.gamma(1.6, 150.0)) * quantity / 3 + 1.0, 2)
            margin = 0.28 - 1.1 * discount + float(self.np_rng.normal(0, 0.08))
            profit = round(sales * margin, 2)
            shipping_cost = round(sales * 0.08 * cost_factor, 2)

            row = {
                "row_id": i + 1,
                "order_id": f"{country[:2].upper()}-{order_date.year}-{self.rng.randint(100000, 999999)}",
                "order_date": order_date,
                "ship_date": ship_date,
                "ship_mode": ship_mode,
                "customer_id": customer_id,
                "customer_name": customer_name,
                "segment": segment,
                "city": self.fake.city(),
                "state": self.fake.state(),
                "country": country,
                "market": market,
                "region": region,
                "product_id": product["product_id"],
                "category": product["category"],
                "subcategory": product["subcategory"],
                "product_name": product["product_name"],
                "sales": sales,
                "quantity": quantity,
                "discount": discount,
                "profit": profit,
                "shipping_cost": shipping_cost,
                "order_priority": self.rng.choices(
                    [p for p, _ in ORDER_PRIORITIES], weights=[w for _, w in ORDER_PRIORITIES]
                )[0],
            }
            if self.inject_errors:
                row = self._misfile(row)
            rows.append(row)

        return pl.DataFrame(rows, schema=TRANSACTION_SCHEMA)


def generate_transactions(n: int = 1000, seed: int = 42, inject_errors: bool = True) -> pl.DataFrame:
    """Convenience function for a seeded transaction frame"""
    return TransactionGenerator(seed=seed, inject_errors=inject_errors).generate(n)


def write_transactions_csv(df: pl.DataFrame, path: Optional[str] = None) -> Path:
    """Write transactions as the raw CSV extract, header row included"""
    output_file = Path(path or Path(settings.data_lake.raw_path) / settings.data_lake.source_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    df.write_csv(output_file)
    logger.info(f"Written {len(df)} rows to {output_file}")
    return output_file


if __name__ == "__main__":
    write_transactions_csv(generate_transactions(n=20000))
