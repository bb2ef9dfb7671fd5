from datetime import date

from churnwise.schemas.card import UserCardRecord
from churnwise.services.velocity import (
    VelocityScope,
    cards_in_window,
    count,
    five_twenty_four_details,
    window_clears_on,
)
from churnwise.utils.month_utils import months_after
from tests.conftest import NOW, make_card, make_rule

ALL_ISSUERS = VelocityScope()


def _history():
    return [
        make_card("c1", months_ago=2),
        make_card("c2", product_id="amex/gold", issuer="amex", months_ago=8),
        make_card("c3", product_id="citi/premier", issuer="citi", months_ago=14),
        make_card("c4", product_id="capital_one/venture_x", issuer="capital_one", months_ago=20),
        make_card("c5", months_ago=30),
    ]


# --- counting ---

def test_count_includes_only_cards_in_window():
    assert count(_history(), 24, NOW, ALL_ISSUERS) == 4


def test_cards_in_window_sorted_oldest_first():
    ids = [c.id for c in cards_in_window(_history(), 24, NOW, ALL_ISSUERS)]
    assert ids == ["c4", "c3", "c2", "c1"]


def test_closed_cards_still_count():
    cards = [make_card("c1", months_ago=3, closed_date=months_after(NOW, -1))]
    assert count(cards, 24, NOW, ALL_ISSUERS) == 1


def test_issuer_scope():
    scope = VelocityScope(issuer="chase", counts_across_all_issuers=False)
    assert count(_history(), 24, NOW, scope) == 1


def test_unknown_issuer_counted_in_issuer_scope():
    scope = VelocityScope(issuer="chase", counts_across_all_issuers=False)
    cards = [make_card("c1", product_id="mystery", issuer=None, months_ago=3)]
    assert count(cards, 24, NOW, scope) == 1


def test_business_cards_exempt():
    cards = [
        make_card("p", months_ago=3),
        make_card("b", product_id="chase/ink", months_ago=3, is_business_card=True),
    ]
    assert count(cards, 24, NOW, VelocityScope(business_cards_exempt=True)) == 1
    assert count(cards, 24, NOW, ALL_ISSUERS) == 2


def test_scope_from_rule():
    rule = make_rule(
        id="chase_524", category="velocity_limit", window_months=24, max_count=5,
        counts_across_all_issuers=True, business_cards_exempt=True,
    )
    scope = VelocityScope.for_rule(rule)
    assert scope.counts_across_all_issuers
    assert scope.business_cards_exempt


def test_count_monotonic_in_window_length():
    cards = _history()
    counts = [count(cards, w, NOW, ALL_ISSUERS) for w in (1, 3, 6, 12, 24, 36)]
    assert counts == sorted(counts)


def test_count_monotonic_in_card_set():
    cards = _history()
    base = count(cards, 24, NOW, ALL_ISSUERS)
    extra = make_card("c6", months_ago=1)
    assert count(cards + [extra], 24, NOW, ALL_ISSUERS) >= base


def test_future_cards_not_counted():
    cards = [make_card("f", open_date=date(2025, 7, 1))]
    assert count(cards, 24, NOW, ALL_ISSUERS) == 0


# --- window_clears_on ---

def test_clears_on_none_when_under_limit():
    window = cards_in_window(_history(), 24, NOW, ALL_ISSUERS)
    assert window_clears_on(window, 24, 5) is None


def test_clears_on_oldest_card_when_one_over():
    cards = _history() + [make_card("c6", months_ago=1)]
    window = cards_in_window(cards, 24, NOW, ALL_ISSUERS)
    # 5 cards, limit 5: one has to age out
    assert window_clears_on(window, 24, 5) == months_after(window[0].open_date, 24)


def test_clears_on_waits_for_enough_cards_to_age_out():
    cards = [make_card(f"c{i}", months_ago=m) for i, m in enumerate([20, 18, 10, 4, 2, 1])]
    window = cards_in_window(cards, 24, NOW, ALL_ISSUERS)
    resolve = window_clears_on(window, 24, 5)
    # 6 cards, limit 5: the two oldest must drop off
    assert resolve == months_after(window[1].open_date, 24)


def test_clears_on_date_is_sound():
    cards = [make_card(f"c{i}", months_ago=m) for i, m in enumerate([23, 20, 18, 10, 4, 2, 1])]
    window = cards_in_window(cards, 24, NOW, ALL_ISSUERS)
    resolve = window_clears_on(window, 24, 5)
    assert count(cards, 24, resolve, ALL_ISSUERS) < 5
    day_before = date.fromordinal(resolve.toordinal() - 1)
    assert count(cards, 24, day_before, ALL_ISSUERS) >= 5


# --- 5/24 details ---

def test_five_twenty_four_scenario():
    status = five_twenty_four_details(_history(), NOW)
    assert status.count == 4
    assert status.status == "yellow"
    assert "c5" not in [a.card.id for a in status.aging]


def test_five_twenty_four_aging_order_and_dates():
    status = five_twenty_four_details(_history(), NOW)
    assert [a.card.id for a in status.aging] == ["c4", "c3", "c2", "c1"]
    first = status.aging[0]
    assert first.ages_out_date == months_after(first.card.open_date, 24)


def test_five_twenty_four_upcoming_slots_count_down():
    status = five_twenty_four_details(_history(), NOW)
    assert [s.new_count for s in status.upcoming] == [3, 2, 1, 0]
    assert status.upcoming[0].opens_on == status.aging[0].ages_out_date


def test_five_twenty_four_colors():
    assert five_twenty_four_details([], NOW).status == "green"
    three = [make_card(f"c{i}", months_ago=i + 1) for i in range(3)]
    assert five_twenty_four_details(three, NOW).status == "green"
    five = [make_card(f"c{i}", months_ago=i + 1) for i in range(5)]
    assert five_twenty_four_details(five, NOW).status == "red"


def test_five_twenty_four_ignores_business_cards():
    cards = [make_card(f"b{i}", months_ago=i + 1, is_business_card=True) for i in range(6)]
    assert five_twenty_four_details(cards, NOW).count == 0


def test_five_twenty_four_reports_rejected_records():
    bad = UserCardRecord.model_construct(
        id="bad", product_id="chase/freedom", open_date=date(2025, 4, 15),
        closed_date=date(2025, 1, 1), issuer="chase", nickname=None,
    )
    status = five_twenty_four_details(_history() + [bad], NOW)
    assert status.count == 4
    [warning] = status.warnings
    assert "Card chase/freedom was rejected" in warning


def test_upcoming_slots_one_per_counted_card():
    status = five_twenty_four_details(_history(), NOW)
    assert len(status.upcoming) == len(status.aging)
    assert all(s.opens_on > NOW for s in status.upcoming)
