from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

RuleKind = Literal["application", "bonus"]
CooldownAnchor = Literal["bonus_received", "card_closed", "card_opened"]
RuleCategory = Literal[
    "velocity_limit",
    "product_family_conflict",
    "max_open_cards",
    "existing_relationship_preferred",
    "inquiry_sensitivity",
    "bonus_cooldown",
    "lifetime_once_per_product",
]


class RuleBase(BaseModel):
    id: str = Field(min_length=1)
    issuer: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    details: str | None = None
    # None means the rule covers every product of the issuer
    product_ids: frozenset[str] | None = None

    model_config = {"frozen": True}

    @field_validator("issuer")
    @classmethod
    def normalize_issuer(cls, v: str) -> str:
        return v.strip().lower()

    def applies_to(self, product_id: str) -> bool:
        return self.product_ids is None or product_id in self.product_ids


class VelocityLimitRule(RuleBase):
    category: Literal["velocity_limit"]
    rule_kind: Literal["application"] = "application"
    window_months: int = Field(gt=0)
    max_count: int = Field(gt=0)
    counts_across_all_issuers: bool = False
    business_cards_exempt: bool = False


class ProductFamilyConflictRule(RuleBase):
    category: Literal["product_family_conflict"]
    rule_kind: Literal["application"] = "application"
    conflicting_product_ids: frozenset[str] = Field(min_length=1)
    product_family: str | None = None


class MaxOpenCardsRule(RuleBase):
    category: Literal["max_open_cards"]
    rule_kind: Literal["application"] = "application"
    max_count: int = Field(gt=0)
    counts_across_all_issuers: bool = False


class ExistingRelationshipRule(RuleBase):
    category: Literal["existing_relationship_preferred"]
    rule_kind: Literal["application"] = "application"


class InquirySensitivityRule(RuleBase):
    """Informational only: issuers known to weigh recent hard pulls."""

    category: Literal["inquiry_sensitivity"]
    rule_kind: Literal["application"] = "application"
    window_months: int | None = Field(default=None, gt=0)
    max_count: int | None = Field(default=None, gt=0)


class BonusCooldownRule(RuleBase):
    category: Literal["bonus_cooldown"]
    rule_kind: Literal["bonus"] = "bonus"
    cooldown_months: int = Field(gt=0)
    cooldown_anchor: CooldownAnchor | None = None
    product_family: str | None = None
    requires_card_not_currently_held: bool = False


class LifetimeOncePerProductRule(RuleBase):
    category: Literal["lifetime_once_per_product"]
    rule_kind: Literal["bonus"] = "bonus"


Rule = Annotated[
    Union[
        VelocityLimitRule,
        ProductFamilyConflictRule,
        MaxOpenCardsRule,
        ExistingRelationshipRule,
        InquirySensitivityRule,
        BonusCooldownRule,
        LifetimeOncePerProductRule,
    ],
    Field(discriminator="category"),
]

rule_adapter: TypeAdapter[Rule] = TypeAdapter(Rule)


def parse_rule(data: dict) -> Rule:
    """Validate one raw rule record into its category-specific variant."""
    return rule_adapter.validate_python(data)
