from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator


class BenefitDefinition(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    value: Decimal = Field(ge=0)

    model_config = {"frozen": True}


class DowngradeOption(BaseModel):
    target_product_id: str = Field(min_length=1)
    benefits: list[str] = []
    considerations: list[str] = []

    model_config = {"frozen": True}


class CardProduct(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    issuer: str = Field(min_length=1)
    annual_fee: Decimal = Field(default=Decimal("0"), ge=0)
    product_family: str | None = None
    is_business: bool = False
    benefits: list[BenefitDefinition] = []
    downgrade_options: list[DowngradeOption] = []
    historical_bonus_range: str | None = None

    model_config = {"frozen": True}

    @field_validator("issuer")
    @classmethod
    def normalize_issuer(cls, v: str) -> str:
        return v.strip().lower()


class UserCardRecord(BaseModel):
    id: str = Field(min_length=1)
    product_id: str = Field(min_length=1)
    open_date: date
    closed_date: date | None = None
    signup_bonus_received_date: date | None = None
    is_business_card: bool = False
    product_family: str | None = None
    product_changed_from_id: str | None = None
    issuer: str | None = None
    nickname: str | None = Field(default=None, max_length=200)

    model_config = {"frozen": True}

    @field_validator("issuer")
    @classmethod
    def normalize_issuer(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip().lower() or None

    @model_validator(mode="after")
    def validate_dates(self) -> "UserCardRecord":
        if not self.has_valid_dates():
            raise ValueError("closed_date cannot be before open_date")
        return self

    def has_valid_dates(self) -> bool:
        return self.closed_date is None or self.closed_date >= self.open_date

    def is_open(self, now: date) -> bool:
        return self.closed_date is None or self.closed_date > now

    @property
    def label(self) -> str:
        return self.nickname or self.product_id


class BenefitUsage(BaseModel):
    benefit_id: str = Field(min_length=1)
    used_amount: Decimal = Field(ge=0)

    model_config = {"frozen": True}


class CardHistory(BaseModel):
    """A user's card records as handed over by the persistence layer."""

    cards: list[UserCardRecord] = []
    benefit_usage: dict[str, list[BenefitUsage]] = {}
    warnings: list[str] = []
