from collections.abc import Iterable
from datetime import date

from pydantic import BaseModel

from churnwise.schemas.card import CardProduct, UserCardRecord
from churnwise.schemas.catalog import RuleCatalog
from churnwise.schemas.rule import (
    BonusCooldownRule,
    CooldownAnchor,
    ExistingRelationshipRule,
    LifetimeOncePerProductRule,
    MaxOpenCardsRule,
    ProductFamilyConflictRule,
    Rule,
    VelocityLimitRule,
)
from churnwise.schemas.verdict import Blocker, BonusTimeline, BonusTimelineItem, EligibilityVerdict
from churnwise.services import velocity
from churnwise.services.velocity import screen_cards
from churnwise.utils.month_utils import format_date, months_after

_ANCHOR_LABELS = {
    "bonus_received": "bonus received",
    "card_closed": "card closed",
    "card_opened": "card opened",
}


def resolve_cooldown_anchor(card: UserCardRecord, anchor: CooldownAnchor | None) -> tuple[date, bool]:
    """Return (anchor date, fell back to open date)."""
    if anchor == "bonus_received":
        value = card.signup_bonus_received_date
    elif anchor == "card_closed":
        value = card.closed_date
    else:
        return card.open_date, False
    if value is None:
        return card.open_date, True
    return value, False


def cooldown_eligible_date(card: UserCardRecord, rule: BonusCooldownRule) -> tuple[date, bool]:
    start, fell_back = resolve_cooldown_anchor(card, rule.cooldown_anchor)
    return months_after(start, rule.cooldown_months), fell_back


def fallback_note(card: UserCardRecord, rule: BonusCooldownRule) -> str:
    label = _ANCHOR_LABELS[rule.cooldown_anchor or "card_opened"]
    return (
        f"No {label} date recorded for {card.label}: the {rule.name} cooldown was "
        f"counted from the open date and may be inaccurate"
    )


def rule_applies(rule: Rule, product: CardProduct) -> bool:
    """Whether an issuer rule is relevant to this particular product."""
    if rule.issuer != product.issuer or not rule.applies_to(product.id):
        return False
    if isinstance(rule, BonusCooldownRule) and rule.product_family is not None:
        return product.product_family == rule.product_family
    if isinstance(rule, ProductFamilyConflictRule) and rule.product_family is not None:
        return (
            product.product_family == rule.product_family
            or product.id in rule.conflicting_product_ids
        )
    return True


class _Findings:
    """Blockers and notes collected while walking one product's rules."""

    def __init__(self) -> None:
        self.application: list[Blocker] = []
        self.bonus: list[Blocker] = []
        self.advisories: list[Blocker] = []
        self.notes: list[str] = []
        self.fallbacks: list[str] = []
        self.warnings: list[str] = []


# --- Application rules ---

def _check_velocity(rule: VelocityLimitRule, cards: list[UserCardRecord], now: date, found: _Findings) -> None:
    scope = velocity.VelocityScope.for_rule(rule)
    window = velocity.cards_in_window(cards, rule.window_months, now, scope)
    if not scope.counts_across_all_issuers:
        for card in window:
            if card.issuer is None:
                found.warnings.append(
                    f"Card {card.label} has no issuer recorded and was counted toward {rule.name}"
                )

    n = len(window)
    if n >= rule.max_count:
        found.application.append(Blocker(
            rule=rule,
            reason=f"You have {n} cards in {rule.window_months} months (limit: {rule.max_count})",
            resolve_date=velocity.window_clears_on(window, rule.window_months, rule.max_count),
        ))
    elif n == rule.max_count - 1:
        found.notes.append(
            f"Approval would use your last slot under {rule.name} ({n}/{rule.max_count})"
        )


def _check_family_conflict(
    rule: ProductFamilyConflictRule, cards: list[UserCardRecord], now: date, found: _Findings
) -> None:
    held = [c for c in cards if c.is_open(now) and c.product_id in rule.conflicting_product_ids]
    if not held:
        return
    family = rule.product_family or "conflicting"
    found.application.append(Blocker(
        rule=rule,
        reason=f"You currently hold a {family} product ({held[0].label})",
        action_required=f"Cancel or product change your existing {family} card first",
    ))


def _check_max_open(rule: MaxOpenCardsRule, cards: list[UserCardRecord], now: date, found: _Findings) -> None:
    scope = velocity.VelocityScope.for_rule(rule)
    open_cards = [c for c in cards if c.is_open(now) and scope.matches(c)]
    if len(open_cards) >= rule.max_count:
        found.application.append(Blocker(
            rule=rule,
            reason=f"You have {len(open_cards)} open cards (limit: {rule.max_count})",
            action_required="Close an existing card before applying",
        ))


def _check_relationship(rule: ExistingRelationshipRule, found: _Findings) -> None:
    # Advisory only: reported, but never makes can_apply false.
    found.advisories.append(Blocker(
        rule=rule,
        reason=rule.description or rule.name,
        action_required="Open a bank account first for better approval odds",
    ))


# --- Bonus rules ---

def _check_lifetime(
    rule: LifetimeOncePerProductRule, product: CardProduct, cards: list[UserCardRecord], found: _Findings
) -> None:
    ever_held = any(
        c.product_id == product.id or c.product_changed_from_id == product.id for c in cards
    )
    if ever_held:
        found.bonus.append(Blocker(
            rule=rule,
            reason="Once per lifetime: you have previously held this card",
            action_required="Look for targeted bypass offers",
        ))


def _check_cooldown(
    rule: BonusCooldownRule, product: CardProduct, cards: list[UserCardRecord], now: date, found: _Findings
) -> None:
    if rule.product_family is not None:
        matching = [c for c in cards if c.product_family == rule.product_family]
    else:
        matching = [c for c in cards if c.product_id == product.id]

    latest: date | None = None
    latest_card: UserCardRecord | None = None
    latest_fell_back = False
    for card in matching:
        eligible, fell_back = cooldown_eligible_date(card, rule)
        if fell_back:
            found.fallbacks.append(fallback_note(card, rule))
        # The most restrictive card decides, not the first one found
        if latest is None or eligible > latest:
            latest, latest_card, latest_fell_back = eligible, card, fell_back

    if latest is not None and latest > now:
        anchor = _ANCHOR_LABELS[rule.cooldown_anchor or "card_opened"]
        reason = f"{rule.cooldown_months}-month cooldown from {anchor} ({latest_card.label})"
        if latest_fell_back:
            reason += ", estimated from the open date"
        found.bonus.append(Blocker(rule=rule, reason=reason, resolve_date=latest))

    if rule.requires_card_not_currently_held:
        if any(c.product_id == product.id and c.is_open(now) for c in cards):
            found.bonus.append(Blocker(
                rule=rule,
                reason="Must not currently hold this card",
                action_required="Cancel the card first, then wait for cooldown",
            ))


def _collect(product: CardProduct, cards: list[UserCardRecord], catalog: RuleCatalog, now: date) -> _Findings:
    found = _Findings()
    for rule in catalog.rules_for(product.issuer):
        if not rule_applies(rule, product):
            continue
        if isinstance(rule, VelocityLimitRule):
            _check_velocity(rule, cards, now, found)
        elif isinstance(rule, ProductFamilyConflictRule):
            _check_family_conflict(rule, cards, now, found)
        elif isinstance(rule, MaxOpenCardsRule):
            _check_max_open(rule, cards, now, found)
        elif isinstance(rule, ExistingRelationshipRule):
            _check_relationship(rule, found)
        elif isinstance(rule, LifetimeOncePerProductRule):
            _check_lifetime(rule, product, cards, found)
        elif isinstance(rule, BonusCooldownRule):
            _check_cooldown(rule, product, cards, now, found)
        # inquiry_sensitivity rules are informational and never block
    return found


def _soonest(blockers: list[Blocker]) -> date | None:
    dates = [b.resolve_date for b in blockers if b.resolve_date is not None]
    return min(dates) if dates else None


def _recommendations(found: _Findings) -> list[str]:
    recs: list[str] = []
    if found.application:
        soonest = _soonest(found.application)
        if soonest:
            recs.append(f"Wait until {format_date(soonest)} to apply")
        recs.extend(b.action_required for b in found.application if b.action_required)
    elif found.bonus:
        recs.append("You can get approved but won't receive the signup bonus")
        soonest = _soonest(found.bonus)
        if soonest:
            recs.append(f"Bonus eligible from {format_date(soonest)}")
        recs.extend(b.action_required for b in found.bonus if b.action_required)
    else:
        recs.append("You're eligible for both the card and the bonus!")

    recs.extend(b.action_required for b in found.advisories if b.action_required)
    recs.extend(found.notes)
    recs.extend(found.fallbacks)
    return recs


def evaluate(
    candidate: CardProduct,
    user_cards: Iterable[UserCardRecord],
    catalog: RuleCatalog,
    now: date,
) -> EligibilityVerdict:
    """Decide whether `candidate` can be approved and whether its bonus would pay out."""
    cards, warnings = screen_cards(user_cards)
    found = _collect(candidate, cards, catalog, now)

    return EligibilityVerdict(
        product_id=candidate.id,
        can_apply=not found.application,
        can_receive_bonus=not found.bonus,
        application_blockers=found.application,
        bonus_blockers=found.bonus,
        advisories=found.advisories,
        next_eligible_date=_soonest(found.application + found.bonus),
        recommendations=_recommendations(found),
        warnings=warnings + catalog.issues_for(candidate.issuer) + found.warnings + found.fallbacks,
    )


def catalog_warnings(catalog: RuleCatalog, cards: Iterable[UserCardRecord]) -> list[str]:
    """Catalog issues that touch any issuer in a card history, each listed once."""
    issuers = sorted({c.issuer for c in cards if c.issuer})
    warnings = [str(i) for i in catalog.issues if i.issuer is None]
    for issuer in issuers:
        warnings.extend(catalog.issues_for(issuer))
    return list(dict.fromkeys(warnings))


# --- Per-card bonus outlook ---

class BonusOutlook(BaseModel):
    """When a fresh bonus on a held card's product would next pay out."""

    lifetime: bool = False
    has_bonus_rules: bool = False
    eligible_date: date | None = None
    fallbacks: list[str] = []


def bonus_outlook(card: UserCardRecord, product: CardProduct, catalog: RuleCatalog) -> BonusOutlook:
    """Cooldown resolution for one held card, anchored on that card alone."""
    rules = [r for r in catalog.rules_for(product.issuer, "bonus") if rule_applies(r, product)]
    if any(isinstance(r, LifetimeOncePerProductRule) for r in rules):
        return BonusOutlook(lifetime=True, has_bonus_rules=True)

    eligible: date | None = None
    fallbacks: list[str] = []
    for rule in rules:
        if not isinstance(rule, BonusCooldownRule):
            continue
        candidate_date, fell_back = cooldown_eligible_date(card, rule)
        if fell_back:
            fallbacks.append(fallback_note(card, rule))
        if eligible is None or candidate_date > eligible:
            eligible = candidate_date
    return BonusOutlook(has_bonus_rules=bool(rules), eligible_date=eligible, fallbacks=fallbacks)


def bonus_timeline(
    user_cards: Iterable[UserCardRecord], catalog: RuleCatalog, now: date
) -> BonusTimeline:
    """For each card the user has held, when its product's bonus is next available."""
    cards, warnings = screen_cards(user_cards)
    items = []
    for card in cards:
        product = catalog.product(card.product_id)
        if product is None:
            items.append(BonusTimelineItem(
                user_card_id=card.id, product_id=card.product_id,
                status="unknown", detail="Card product is not in the catalog",
            ))
            continue

        outlook = bonus_outlook(card, product, catalog)
        if outlook.lifetime:
            status, detail = "lifetime", "Once per lifetime: no new bonus on this product"
        elif outlook.eligible_date is None:
            status, detail = "unknown", "No bonus cooldown rule on file for this product"
        elif outlook.eligible_date > now:
            status, detail = "cooldown", f"Bonus eligible from {format_date(outlook.eligible_date)}"
        else:
            status, detail = "eligible", "Eligible for a new signup bonus now"
        items.append(BonusTimelineItem(
            user_card_id=card.id, product_id=product.id,
            eligible_date=outlook.eligible_date, status=status, detail=detail,
        ))

    items.sort(key=lambda i: (i.eligible_date is None, i.eligible_date or now, i.user_card_id))
    return BonusTimeline(items=items, warnings=warnings + catalog_warnings(catalog, cards))
