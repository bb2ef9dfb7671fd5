from churnwise.schemas.rule import Rule, RuleKind, CooldownAnchor, parse_rule
from churnwise.schemas.card import BenefitDefinition, DowngradeOption, CardProduct, UserCardRecord, BenefitUsage, CardHistory
from churnwise.schemas.catalog import CatalogIssue, RuleCatalog, IssuerSummary, CatalogSummary
from churnwise.schemas.verdict import Blocker, EligibilityVerdict, FiveTwentyFourStatus, IssuerStatus, BonusTimeline, RetentionVerdict, RetentionPortfolio
from churnwise.schemas.request import CardHistoryIn

__all__ = [
    "Rule", "RuleKind", "CooldownAnchor", "parse_rule",
    "BenefitDefinition", "DowngradeOption", "CardProduct", "UserCardRecord", "BenefitUsage", "CardHistory",
    "CatalogIssue", "RuleCatalog", "IssuerSummary", "CatalogSummary",
    "Blocker", "EligibilityVerdict", "FiveTwentyFourStatus", "IssuerStatus", "BonusTimeline", "RetentionVerdict", "RetentionPortfolio",
    "CardHistoryIn",
]
