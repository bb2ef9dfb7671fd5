import os
from datetime import date
from decimal import Decimal
from pathlib import Path

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("CATALOG_RELOAD_INTERVAL", "0")

import pytest
from fastapi.testclient import TestClient

from churnwise.main import app
from churnwise.schemas.card import BenefitDefinition, CardProduct, DowngradeOption, UserCardRecord
from churnwise.schemas.catalog import RuleCatalog
from churnwise.schemas.rule import parse_rule
from churnwise.services.catalog_loader import get_catalog, load_catalog, set_catalog
from churnwise.utils.month_utils import months_before

FIXTURES_DIR = Path(__file__).parent / "fixtures"
CATALOG_DIR = FIXTURES_DIR / "catalog"
CARDS_FILE = FIXTURES_DIR / "cards.yaml"

NOW = date(2025, 6, 15)


def make_card(
    card_id: str,
    product_id: str = "chase/freedom",
    months_ago: int = 1,
    issuer: str | None = "chase",
    **kwargs,
) -> UserCardRecord:
    """A user card opened `months_ago` calendar months before NOW."""
    kwargs.setdefault("open_date", months_before(NOW, months_ago))
    return UserCardRecord(id=card_id, product_id=product_id, issuer=issuer, **kwargs)


def make_product(product_id: str = "chase/sapphire_preferred", issuer: str = "chase", **kwargs) -> CardProduct:
    kwargs.setdefault("name", product_id)
    return CardProduct(id=product_id, issuer=issuer, **kwargs)


def make_rule(**data):
    data.setdefault("issuer", "chase")
    data.setdefault("name", data["id"])
    return parse_rule(data)


def make_catalog(*rules, products=()) -> RuleCatalog:
    return RuleCatalog(
        version="test",
        rules=tuple(rules),
        products={p.id: p for p in products},
    )


@pytest.fixture
def platinum() -> CardProduct:
    return make_product(
        "amex/platinum",
        issuer="amex",
        annual_fee=Decimal("695"),
        benefits=[
            BenefitDefinition(id="airline", name="Airline fee credit", value=Decimal("200")),
            BenefitDefinition(id="uber", name="Uber Cash", value=Decimal("200")),
            BenefitDefinition(id="hotel", name="Hotel credit", value=Decimal("200")),
        ],
        downgrade_options=[
            DowngradeOption(
                target_product_id="amex/green",
                benefits=["3x travel"],
                considerations=["Lower annual fee of $150"],
            ),
        ],
        historical_bonus_range="80k-150k MR",
    )


@pytest.fixture
def fixture_catalog() -> RuleCatalog:
    return load_catalog(CATALOG_DIR)


@pytest.fixture
def client(fixture_catalog):
    previous = get_catalog()
    set_catalog(fixture_catalog)
    yield TestClient(app)
    set_catalog(previous)
