from collections.abc import Iterable
from datetime import date

from churnwise.schemas.card import UserCardRecord
from churnwise.schemas.catalog import RuleCatalog
from churnwise.schemas.rule import ExistingRelationshipRule, MaxOpenCardsRule, VelocityLimitRule
from churnwise.schemas.verdict import IssuerStatus
from churnwise.services import velocity


def _scope_label(rule) -> str:
    return ", ".join(sorted(rule.product_ids))


def issuer_status(
    issuer: str,
    cards: list[UserCardRecord],
    catalog: RuleCatalog,
    now: date,
    warnings: list[str] | None = None,
) -> IssuerStatus:
    """Classify one issuer as safe, caution or blocked for a new application.

    Only application rules are read; bonus rules never affect the status.
    A blocking threshold wins over any caution signal. Rules limited to
    particular products cannot block the whole issuer: when one of them is
    at its limit it is reported as a caution naming those products.
    `cards` must already be screened; `warnings` carries what screening
    rejected.
    """
    blocked_reasons: list[str] = []
    caution_reasons: list[str] = []
    clear_dates: list[date] = []

    for rule in catalog.rules_for(issuer, "application"):
        scoped = rule.product_ids is not None
        if isinstance(rule, VelocityLimitRule):
            scope = velocity.VelocityScope.for_rule(rule)
            window = velocity.cards_in_window(cards, rule.window_months, now, scope)
            n = len(window)
            if n >= rule.max_count and scoped:
                caution_reasons.append(
                    f"Over {rule.max_count}/{rule.window_months} limit for {_scope_label(rule)}"
                )
            elif n >= rule.max_count:
                blocked_reasons.append(f"Over {rule.max_count}/{rule.window_months} limit ({n} cards)")
                clear_dates.append(velocity.window_clears_on(window, rule.window_months, rule.max_count))
            elif n == rule.max_count - 1:
                caution_reasons.append(f"Last slot ({n}/{rule.max_count})")
        elif isinstance(rule, MaxOpenCardsRule):
            scope = velocity.VelocityScope.for_rule(rule)
            open_count = sum(1 for c in cards if c.is_open(now) and scope.matches(c))
            if open_count >= rule.max_count and scoped:
                caution_reasons.append(f"At max {rule.max_count} open cards for {_scope_label(rule)}")
            elif open_count >= rule.max_count:
                blocked_reasons.append(f"At max {rule.max_count} open cards")
        elif isinstance(rule, ExistingRelationshipRule):
            caution_reasons.append("Existing relationship recommended")

    if blocked_reasons:
        level, summary = "blocked", "; ".join(blocked_reasons)
    elif caution_reasons:
        level, summary = "caution", "; ".join(caution_reasons)
    else:
        level, summary = "safe", "Safe to apply"

    # Blocked by velocity windows only: clears once the last of them does
    next_date = None
    if level == "blocked" and len(clear_dates) == len(blocked_reasons):
        next_date = max(clear_dates)

    return IssuerStatus(
        issuer=issuer,
        display_name=catalog.display_name(issuer),
        can_apply=level != "blocked",
        level=level,
        summary=summary,
        next_eligible_date=next_date,
        warnings=list(warnings or []) + catalog.issues_for(issuer),
    )


def summarize(
    user_cards: Iterable[UserCardRecord], catalog: RuleCatalog, now: date
) -> list[IssuerStatus]:
    """One status per issuer in the catalog, sorted by display name."""
    cards, rejected = velocity.screen_cards(user_cards)
    return [issuer_status(issuer, cards, catalog, now, rejected) for issuer in catalog.issuers()]
