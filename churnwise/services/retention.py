import logging
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal

from churnwise.schemas.card import BenefitDefinition, BenefitUsage, CardProduct, UserCardRecord
from churnwise.schemas.catalog import RuleCatalog
from churnwise.schemas.verdict import Alternative, RechurnAnalysis, RetentionPortfolio, RetentionVerdict
from churnwise.services.eligibility import bonus_outlook, catalog_warnings, screen_cards
from churnwise.utils.month_utils import format_date, months_after

logger = logging.getLogger(__name__)

# Fixed policy thresholds, in dollars of net annual value
KEEP_THRESHOLD = Decimal("50")
RETENTION_CALL_FLOOR = Decimal("-50")
WAIT_FOR_BONUS_MONTHS = 6


def _money(value: Decimal) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def estimate_benefit_value(
    product: CardProduct, usage: Iterable[BenefitUsage]
) -> tuple[Decimal, list[BenefitDefinition]]:
    """Sum what the product's benefits are worth to this user.

    A benefit with logged usage counts for the lesser of its face value and
    the amount used. A benefit with no logged usage counts at full face
    value; those are returned so the caller can caveat the estimate.
    """
    used_by_id: dict[str, Decimal] = {}
    for u in usage:
        used_by_id[u.benefit_id] = used_by_id.get(u.benefit_id, Decimal("0")) + u.used_amount

    total = Decimal("0")
    unused: list[BenefitDefinition] = []
    for benefit in product.benefits:
        used = used_by_id.get(benefit.id, Decimal("0"))
        if used > 0:
            total += min(benefit.value, used)
        else:
            total += benefit.value
            unused.append(benefit)
    return total, unused


def rechurn_analysis(
    user_card: UserCardRecord, product: CardProduct, catalog: RuleCatalog, now: date
) -> tuple[RechurnAnalysis, list[str]]:
    """Whether and when a fresh signup bonus on this product becomes available.

    Returns the analysis and any cooldown-anchor fallback notes.
    """
    outlook = bonus_outlook(user_card, product, catalog)
    if outlook.lifetime:
        return RechurnAnalysis(
            can_rechurn=False,
            historical_bonus_range=product.historical_bonus_range or "N/A",
            summary="This card has lifetime language - bonus is once per lifetime.",
        ), []

    can_rechurn = outlook.has_bonus_rules
    eligible = outlook.eligible_date
    if not can_rechurn:
        summary = "This card is not eligible for rechurning."
    elif eligible is None:
        summary = "Check issuer rules for bonus eligibility timing."
    elif eligible <= now:
        summary = "You are currently eligible for a new signup bonus."
    else:
        summary = f"You will be eligible for a new bonus from {format_date(eligible)}."

    return RechurnAnalysis(
        can_rechurn=can_rechurn,
        bonus_eligible_date=eligible,
        historical_bonus_range=product.historical_bonus_range or "Unknown",
        summary=summary,
    ), outlook.fallbacks


def determine_recommendation(
    net_value: Decimal, rechurn: RechurnAnalysis, has_downgrade: bool, now: date
) -> str:
    if net_value >= KEEP_THRESHOLD:
        return "keep"
    if net_value >= RETENTION_CALL_FLOOR:
        return "call_retention_line"

    if rechurn.can_rechurn:
        eligible = rechurn.bonus_eligible_date
        if eligible is None or eligible <= months_after(now, WAIT_FOR_BONUS_MONTHS):
            return "wait_for_bonus"

    if has_downgrade:
        return "downgrade"
    return "cancel"


def _reasoning(
    annual_fee: Decimal,
    benefit_value: Decimal,
    net_value: Decimal,
    recommendation: str,
    rechurn: RechurnAnalysis,
    unused: list[BenefitDefinition],
    fallbacks: list[str],
) -> str:
    parts = [
        f"Annual fee: {_money(annual_fee)}. Estimated benefit value: {_money(benefit_value)}. "
        f"Net value: {_money(net_value)}."
    ]

    if recommendation == "keep":
        parts.append("This card provides strong net positive value and is worth keeping.")
    elif recommendation == "cancel":
        parts.append(
            "This card costs more than the value you receive from its benefits, "
            "with no downgrade path available."
        )
    elif recommendation == "downgrade":
        parts.append(
            "This card costs more than you receive in benefits, but a no-fee or lower-fee "
            "downgrade is available to preserve your credit history."
        )
    elif recommendation == "call_retention_line":
        parts.append(
            "The value is borderline. Call the retention line to request a retention offer "
            "(statement credit or bonus points) before deciding."
        )
    elif rechurn.bonus_eligible_date is not None:
        parts.append(
            "While the card is net negative, you will be eligible for a new signup bonus from "
            f"{format_date(rechurn.bonus_eligible_date)}. Consider keeping until then."
        )
    else:
        parts.append(
            "A rechurn opportunity may be available soon. Hold the card until you can "
            "capture a new signup bonus."
        )

    if unused:
        names = ", ".join(b.name for b in unused)
        parts.append(
            f"Benefits with no logged usage ({names}) were counted at full face value, "
            "so this estimate may be optimistic."
        )
    if fallbacks:
        parts.append("The bonus cooldown date was estimated from the card's open date.")

    return " ".join(parts)


def _alternatives(
    product: CardProduct, rechurn: RechurnAnalysis, recommendation: str
) -> list[Alternative]:
    alternatives = []

    if recommendation != "call_retention_line":
        alternatives.append(Alternative(
            kind="request_retention_offer",
            benefit="Request a retention offer (statement credit or bonus points) to offset the annual fee",
            considerations=[
                "Call the number on the back of your card",
                "Mention you are considering canceling due to the annual fee",
                "Be prepared to accept or decline their offer on the spot",
            ],
        ))

    for option in product.downgrade_options:
        alternatives.append(Alternative(
            kind="product_change",
            target_product_id=option.target_product_id,
            benefit=f"Product change to {option.target_product_id} to keep your credit line and history",
            considerations=list(option.considerations),
        ))

    if recommendation != "cancel":
        considerations = [
            "Your credit line will be closed, which may affect your credit utilization ratio",
            "You will lose any remaining benefits immediately",
        ]
        if rechurn.can_rechurn:
            note = f"After canceling, you may be eligible for a new signup bonus ({rechurn.historical_bonus_range})"
            if rechurn.bonus_eligible_date is not None:
                note += f" from {format_date(rechurn.bonus_eligible_date)}"
            considerations.append(note)
        alternatives.append(Alternative(
            kind="cancel",
            benefit="Cancel the card to stop paying the annual fee",
            considerations=considerations,
        ))

    if recommendation != "keep":
        alternatives.append(Alternative(
            kind="keep",
            benefit="Keep the card and maximize benefit usage to offset the fee",
            considerations=[
                "Review all available benefits and set reminders to use them",
                "Consider whether upcoming travel or purchases change the value calculation",
            ],
        ))

    return alternatives


def analyze(
    user_card: UserCardRecord,
    card_product: CardProduct,
    catalog: RuleCatalog,
    benefit_usage: Iterable[BenefitUsage],
    now: date,
) -> RetentionVerdict:
    """Decide whether a held card is worth its annual fee."""
    warnings: list[str] = []
    if user_card.product_id != card_product.id:
        warnings.append(
            f"Card {user_card.label} is recorded as {user_card.product_id} "
            f"but was analyzed as {card_product.id}"
        )

    annual_fee = card_product.annual_fee
    benefit_value, unused = estimate_benefit_value(card_product, benefit_usage)
    net_value = benefit_value - annual_fee

    rechurn, fallbacks = rechurn_analysis(user_card, card_product, catalog, now)
    recommendation = determine_recommendation(
        net_value, rechurn, bool(card_product.downgrade_options), now
    )

    return RetentionVerdict(
        user_card_id=user_card.id,
        product_id=card_product.id,
        annual_fee=annual_fee,
        estimated_benefit_value=benefit_value,
        net_value=net_value,
        recommendation=recommendation,
        reasoning=_reasoning(annual_fee, benefit_value, net_value, recommendation, rechurn, unused, fallbacks),
        alternatives=_alternatives(card_product, rechurn, recommendation),
        rechurn=rechurn,
        warnings=warnings + fallbacks,
    )


def analyze_portfolio(
    user_cards: Iterable[UserCardRecord],
    catalog: RuleCatalog,
    usage_by_card: Mapping[str, list[BenefitUsage]],
    now: date,
) -> RetentionPortfolio:
    """Run `analyze` for every open card whose product the catalog knows."""
    cards, warnings = screen_cards(user_cards)
    verdicts = []
    for card in cards:
        if not card.is_open(now):
            continue
        product = catalog.product(card.product_id)
        if product is None:
            logger.warning("Skipping retention analysis for %s: unknown product %s", card.id, card.product_id)
            warnings.append(f"Card {card.label} was not analyzed: {card.product_id} is not in the catalog")
            continue
        verdicts.append(analyze(card, product, catalog, usage_by_card.get(card.id, []), now))
    return RetentionPortfolio(verdicts=verdicts, warnings=warnings + catalog_warnings(catalog, cards))
