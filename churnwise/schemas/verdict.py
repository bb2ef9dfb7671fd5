from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel

from churnwise.schemas.card import UserCardRecord
from churnwise.schemas.rule import Rule

EligibilityLevel = Literal["safe", "caution", "blocked"]
FiveTwentyFourColor = Literal["green", "yellow", "red"]
RetentionRecommendation = Literal[
    "keep", "cancel", "downgrade", "call_retention_line", "wait_for_bonus"
]
AlternativeKind = Literal["request_retention_offer", "product_change", "cancel", "keep"]
BonusStatus = Literal["eligible", "cooldown", "lifetime", "unknown"]


class Blocker(BaseModel):
    rule: Rule
    reason: str
    resolve_date: date | None = None  # None: needs user action, not time
    action_required: str | None = None

    model_config = {"frozen": True}


class EligibilityVerdict(BaseModel):
    product_id: str
    can_apply: bool
    can_receive_bonus: bool
    application_blockers: list[Blocker] = []
    bonus_blockers: list[Blocker] = []
    advisories: list[Blocker] = []
    next_eligible_date: date | None = None
    recommendations: list[str] = []
    warnings: list[str] = []


class AgingCard(BaseModel):
    card: UserCardRecord
    ages_out_date: date


class UpcomingSlot(BaseModel):
    opens_on: date
    new_count: int
    card: UserCardRecord


class FiveTwentyFourStatus(BaseModel):
    count: int
    status: FiveTwentyFourColor
    aging: list[AgingCard] = []
    upcoming: list[UpcomingSlot] = []
    warnings: list[str] = []


class IssuerStatus(BaseModel):
    issuer: str
    display_name: str
    can_apply: bool
    level: EligibilityLevel
    summary: str
    next_eligible_date: date | None = None
    warnings: list[str] = []


class BonusTimelineItem(BaseModel):
    user_card_id: str
    product_id: str
    eligible_date: date | None = None
    status: BonusStatus
    detail: str


class BonusTimeline(BaseModel):
    items: list[BonusTimelineItem] = []
    warnings: list[str] = []


class RechurnAnalysis(BaseModel):
    can_rechurn: bool
    bonus_eligible_date: date | None = None
    historical_bonus_range: str = "Unknown"
    summary: str


class Alternative(BaseModel):
    kind: AlternativeKind
    target_product_id: str | None = None
    benefit: str
    considerations: list[str] = []


class RetentionVerdict(BaseModel):
    user_card_id: str
    product_id: str
    annual_fee: Decimal
    estimated_benefit_value: Decimal
    net_value: Decimal
    recommendation: RetentionRecommendation
    reasoning: str
    alternatives: list[Alternative] = []
    rechurn: RechurnAnalysis
    warnings: list[str] = []


class RetentionPortfolio(BaseModel):
    verdicts: list[RetentionVerdict] = []
    warnings: list[str] = []
