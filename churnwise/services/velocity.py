import logging
from collections.abc import Iterable
from datetime import date

from pydantic import BaseModel

from churnwise.schemas.card import UserCardRecord
from churnwise.schemas.rule import MaxOpenCardsRule, VelocityLimitRule
from churnwise.schemas.verdict import AgingCard, FiveTwentyFourStatus, UpcomingSlot
from churnwise.utils.month_utils import is_within_window, months_after

logger = logging.getLogger(__name__)

FIVE_TWENTY_FOUR_WINDOW_MONTHS = 24
FIVE_TWENTY_FOUR_LIMIT = 5


def screen_cards(user_cards: Iterable[UserCardRecord]) -> tuple[list[UserCardRecord], list[str]]:
    """Split out records whose closed date precedes their open date.

    Such records can only arrive when a caller bypassed validation. They are
    left out of every count and reported, never dropped silently.
    """
    valid: list[UserCardRecord] = []
    warnings: list[str] = []
    for card in user_cards:
        if card.has_valid_dates():
            valid.append(card)
            continue
        message = (
            f"Card {card.label} was rejected: closed {card.closed_date} before it was "
            f"opened {card.open_date}. Fix the record; it was left out of this result."
        )
        logger.warning("Rejected card record %s: closed_date before open_date", card.id)
        warnings.append(message)
    return valid, warnings


class VelocityScope(BaseModel):
    """Which of a user's cards a velocity or open-card rule looks at."""

    issuer: str | None = None
    counts_across_all_issuers: bool = True
    business_cards_exempt: bool = False

    model_config = {"frozen": True}

    @classmethod
    def for_rule(cls, rule: VelocityLimitRule | MaxOpenCardsRule) -> "VelocityScope":
        return cls(
            issuer=rule.issuer,
            counts_across_all_issuers=rule.counts_across_all_issuers,
            business_cards_exempt=getattr(rule, "business_cards_exempt", False),
        )

    def matches(self, card: UserCardRecord) -> bool:
        if self.business_cards_exempt and card.is_business_card:
            return False
        if self.counts_across_all_issuers or self.issuer is None:
            return True
        # Cards of unknown issuer are counted so a gap in the history
        # can never turn into a false "eligible now".
        return card.issuer is None or card.issuer == self.issuer


def cards_in_window(
    user_cards: Iterable[UserCardRecord],
    window_months: int,
    now: date,
    scope: VelocityScope,
) -> list[UserCardRecord]:
    """Cards opened inside the trailing window, oldest first.

    Closed cards stay in the list: a closure does not undo the hard pull.
    """
    cards = [
        c for c in user_cards
        if scope.matches(c) and is_within_window(c.open_date, now, window_months)
    ]
    return sorted(cards, key=lambda c: (c.open_date, c.id))


def count(
    user_cards: Iterable[UserCardRecord],
    window_months: int,
    now: date,
    scope: VelocityScope,
) -> int:
    return len(cards_in_window(user_cards, window_months, now, scope))


def window_clears_on(
    window_cards: list[UserCardRecord], window_months: int, max_count: int
) -> date | None:
    """First date on which the window holds fewer than `max_count` cards.

    `window_cards` must be sorted oldest first, as `cards_in_window` returns.
    Returns None when the window is already under the limit.
    """
    excess = len(window_cards) - max_count
    if excess < 0:
        return None
    return months_after(window_cards[excess].open_date, window_months)


def aging_schedule_524(user_cards: Iterable[UserCardRecord], now: date) -> list[AgingCard]:
    """Personal cards counting toward 5/24 with the date each one drops off."""
    scope = VelocityScope(business_cards_exempt=True)
    schedule = [
        AgingCard(
            card=card,
            ages_out_date=months_after(card.open_date, FIVE_TWENTY_FOUR_WINDOW_MONTHS),
        )
        for card in cards_in_window(user_cards, FIVE_TWENTY_FOUR_WINDOW_MONTHS, now, scope)
    ]
    return sorted(schedule, key=lambda a: (a.ages_out_date, a.card.id))


def upcoming_slots(user_cards: Iterable[UserCardRecord], now: date) -> list[UpcomingSlot]:
    """Project the 5/24 count forward, one entry per card that ages out."""
    schedule = aging_schedule_524(user_cards, now)
    running = len(schedule)
    slots = []
    for item in schedule:
        running -= 1
        slots.append(UpcomingSlot(opens_on=item.ages_out_date, new_count=running, card=item.card))
    return slots


def five_twenty_four_details(user_cards: Iterable[UserCardRecord], now: date) -> FiveTwentyFourStatus:
    """Get 5/24 count, traffic-light status and per-card drop-off dates."""
    cards, warnings = screen_cards(user_cards)
    schedule = aging_schedule_524(cards, now)
    count_ = len(schedule)
    if count_ < FIVE_TWENTY_FOUR_LIMIT - 1:
        status = "green"
    elif count_ == FIVE_TWENTY_FOUR_LIMIT - 1:
        status = "yellow"
    else:
        status = "red"
    return FiveTwentyFourStatus(
        count=count_,
        status=status,
        aging=schedule,
        upcoming=upcoming_slots(cards, now),
        warnings=warnings,
    )
