from datetime import date

from churnwise.schemas.card import UserCardRecord
from churnwise.schemas.catalog import CatalogIssue, RuleCatalog
from churnwise.services.issuer_status import issuer_status, summarize
from churnwise.utils.month_utils import months_after, months_before
from tests.conftest import NOW, make_card, make_catalog, make_rule

CHASE_524 = make_rule(
    id="chase_524", category="velocity_limit", window_months=24, max_count=5,
    counts_across_all_issuers=True, business_cards_exempt=True,
)
CHASE_2_30 = make_rule(id="chase_2_30", category="velocity_limit", window_months=1, max_count=2)
SAPPHIRE_48 = make_rule(
    id="sapphire_48", category="bonus_cooldown", product_family="sapphire", cooldown_months=48,
)
AMEX_MAX = make_rule(id="amex_max", issuer="amex", category="max_open_cards", max_count=2)
USB_REL = make_rule(id="usb_rel", issuer="us_bank", category="existing_relationship_preferred")


def _cards(*months_ago):
    return [
        make_card(f"c{i}", product_id="citi/premier", issuer="citi", months_ago=m)
        for i, m in enumerate(months_ago)
    ]


def test_safe_when_under_limits():
    status = issuer_status("chase", _cards(3, 10), make_catalog(CHASE_524), NOW)
    assert status.level == "safe"
    assert status.can_apply
    assert status.summary == "Safe to apply"
    assert status.display_name == "Chase"


def test_caution_on_last_slot():
    status = issuer_status("chase", _cards(3, 10, 16, 22), make_catalog(CHASE_524), NOW)
    assert status.level == "caution"
    assert status.can_apply
    assert status.summary == "Last slot (4/5)"


def test_blocked_over_velocity_limit():
    status = issuer_status("chase", _cards(1, 3, 10, 16, 22), make_catalog(CHASE_524), NOW)
    assert status.level == "blocked"
    assert not status.can_apply
    assert status.summary == "Over 5/24 limit (5 cards)"
    assert status.next_eligible_date == months_after(months_before(NOW, 22), 24)


def test_blocked_wins_over_caution():
    cards = _cards(3, 10, 16, 22) + [make_card("c", open_date=NOW), make_card("d", open_date=NOW)]
    status = issuer_status("chase", cards, make_catalog(CHASE_524, CHASE_2_30), NOW)
    assert status.level == "blocked"
    assert status.summary == "Over 5/24 limit (6 cards); Over 2/1 limit (2 cards)"
    # both windows must clear
    assert status.next_eligible_date == max(
        months_after(months_before(NOW, 16), 24), months_after(NOW, 1),
    )


def test_bonus_rules_do_not_affect_status():
    cards = [make_card("csp", product_id="chase/sapphire_preferred", months_ago=6, product_family="sapphire")]
    status = issuer_status("chase", cards, make_catalog(SAPPHIRE_48), NOW)
    assert status.level == "safe"


def test_max_open_cards_blocks_without_date():
    cards = [
        make_card("a1", product_id="amex/gold", issuer="amex", months_ago=30),
        make_card("a2", product_id="amex/platinum", issuer="amex", months_ago=40),
    ]
    status = issuer_status("amex", cards, make_catalog(AMEX_MAX), NOW)
    assert status.level == "blocked"
    assert status.summary == "At max 2 open cards"
    assert status.next_eligible_date is None


def test_relationship_rule_is_caution():
    status = issuer_status("us_bank", [], make_catalog(USB_REL), NOW)
    assert status.level == "caution"
    assert status.can_apply
    assert status.summary == "Existing relationship recommended"


def test_summarize_covers_every_issuer():
    catalog = make_catalog(CHASE_524, AMEX_MAX, USB_REL)
    statuses = summarize(_cards(1, 3, 10, 16, 22), catalog, NOW)
    assert [s.display_name for s in statuses] == ["American Express", "Chase", "US Bank"]
    assert [s.level for s in statuses] == ["safe", "blocked", "caution"]


# --- data quality ---

def _broken_card():
    return UserCardRecord.model_construct(
        id="broken", product_id="chase/freedom", open_date=date(2025, 4, 15),
        closed_date=date(2025, 1, 1), issuer="chase", nickname=None,
    )


def test_summarize_reports_rejected_records():
    statuses = summarize(_cards(1, 3, 10, 16) + [_broken_card()], make_catalog(CHASE_524, AMEX_MAX), NOW)
    chase = next(s for s in statuses if s.issuer == "chase")
    assert chase.summary == "Last slot (4/5)"
    assert any("was rejected" in w for w in chase.warnings)
    assert all(len(s.warnings) == 1 for s in statuses)


def test_summarize_reports_skipped_rules():
    catalog = RuleCatalog(
        rules=(AMEX_MAX,),
        issues=(CatalogIssue(issuer="chase", entry_id="chase_524", message="rule skipped"),),
    )
    statuses = {s.issuer: s for s in summarize(_cards(1, 2, 3, 4, 5, 6), catalog, NOW)}
    assert statuses["chase"].level == "safe"
    assert statuses["chase"].warnings == ["chase/chase_524: rule skipped"]
    assert statuses["amex"].warnings == []


# --- product-scoped rules ---

def test_product_scoped_velocity_rule_does_not_block_issuer():
    rule = make_rule(
        id="csr_2_24", category="velocity_limit", window_months=24, max_count=2,
        product_ids=["chase/sapphire_reserve"],
    )
    cards = [make_card("a", months_ago=2), make_card("b", months_ago=5)]
    status = issuer_status("chase", cards, make_catalog(rule), NOW)
    assert status.level == "caution"
    assert status.can_apply
    assert status.summary == "Over 2/24 limit for chase/sapphire_reserve"
    assert status.next_eligible_date is None


def test_product_scoped_max_open_rule_does_not_block_issuer():
    rule = make_rule(
        id="amex_plat_max", issuer="amex", category="max_open_cards", max_count=1,
        product_ids=["amex/platinum"],
    )
    cards = [make_card("g", product_id="amex/gold", issuer="amex", months_ago=10)]
    status = issuer_status("amex", cards, make_catalog(rule), NOW)
    assert status.level == "caution"
    assert status.summary == "At max 1 open cards for amex/platinum"
