from pydantic import BaseModel

from churnwise.schemas.card import CardProduct
from churnwise.schemas.rule import Rule, RuleKind

# Used when the catalog does not name an issuer itself
ISSUER_DISPLAY_NAMES = {
    "amex": "American Express",
    "bank_of_america": "Bank of America",
    "barclays": "Barclays",
    "capital_one": "Capital One",
    "chase": "Chase",
    "citi": "Citi",
    "discover": "Discover",
    "us_bank": "US Bank",
    "wells_fargo": "Wells Fargo",
}


class CatalogIssue(BaseModel):
    """A catalog entry that failed validation and was left out."""

    issuer: str | None = None
    entry_id: str | None = None
    message: str

    model_config = {"frozen": True}

    def __str__(self) -> str:
        where = "/".join(p for p in (self.issuer, self.entry_id) if p)
        return f"{where}: {self.message}" if where else self.message


class RuleCatalog(BaseModel):
    """A read-only snapshot of the rule feed, versioned as a whole."""

    version: str = ""
    rules: tuple[Rule, ...] = ()
    products: dict[str, CardProduct] = {}
    issuer_names: dict[str, str] = {}
    issues: tuple[CatalogIssue, ...] = ()

    model_config = {"frozen": True}

    def rules_for(self, issuer: str, kind: RuleKind | None = None) -> list[Rule]:
        issuer = issuer.lower()
        return [
            r for r in self.rules
            if r.issuer == issuer and (kind is None or r.rule_kind == kind)
        ]

    def product(self, product_id: str) -> CardProduct | None:
        return self.products.get(product_id)

    def issuers(self) -> list[str]:
        """Issuers with rules or catalog issues, sorted by display name."""
        found = {r.issuer for r in self.rules} | {i.issuer for i in self.issues if i.issuer}
        return sorted(found, key=lambda i: self.display_name(i).lower())

    def display_name(self, issuer: str) -> str:
        if issuer in self.issuer_names:
            return self.issuer_names[issuer]
        if issuer in ISSUER_DISPLAY_NAMES:
            return ISSUER_DISPLAY_NAMES[issuer]
        return issuer.replace("_", " ").title()

    def issues_for(self, issuer: str) -> list[str]:
        """Data-integrity warnings that may affect verdicts for `issuer`."""
        issuer = issuer.lower()
        return [str(i) for i in self.issues if i.issuer in (None, issuer)]


class IssuerSummary(BaseModel):
    issuer: str
    display_name: str
    rule_count: int


class CatalogSummary(BaseModel):
    version: str
    issuers: list[IssuerSummary]
    product_count: int
    issues: list[str]
