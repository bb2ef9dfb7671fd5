import argparse
import json
import logging
import sys
from datetime import date

from churnwise.config import settings
from churnwise.schemas.card import CardHistory
from churnwise.schemas.catalog import RuleCatalog
from churnwise.services.catalog_loader import load_card_history, load_catalog
from churnwise.services.eligibility import bonus_timeline, evaluate
from churnwise.services.issuer_status import summarize
from churnwise.services.retention import analyze, analyze_portfolio
from churnwise.services.velocity import five_twenty_four_details
from churnwise.utils.timezone import get_today


def _dump(result) -> None:
    if isinstance(result, list):
        payload = [item.model_dump(mode="json") for item in result]
    else:
        payload = result.model_dump(mode="json")
    print(json.dumps(payload, indent=2))


def _load(args: argparse.Namespace) -> tuple[RuleCatalog, CardHistory, date]:
    catalog = load_catalog(args.catalog)
    history = load_card_history(args.cards, catalog)
    for warning in history.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    return catalog, history, args.as_of or get_today()


def cmd_evaluate(args: argparse.Namespace) -> int:
    catalog, history, now = _load(args)
    product = catalog.product(args.product_id)
    if product is None:
        print(f"Unknown card product: {args.product_id}", file=sys.stderr)
        return 2
    _dump(evaluate(product, history.cards, catalog, now))
    return 0


def cmd_issuers(args: argparse.Namespace) -> int:
    catalog, history, now = _load(args)
    _dump(summarize(history.cards, catalog, now))
    return 0


def cmd_524(args: argparse.Namespace) -> int:
    _, history, now = _load(args)
    _dump(five_twenty_four_details(history.cards, now))
    return 0


def cmd_timeline(args: argparse.Namespace) -> int:
    catalog, history, now = _load(args)
    _dump(bonus_timeline(history.cards, catalog, now))
    return 0


def cmd_retention(args: argparse.Namespace) -> int:
    catalog, history, now = _load(args)
    if not args.card_id:
        _dump(analyze_portfolio(history.cards, catalog, history.benefit_usage, now))
        return 0

    card = next((c for c in history.cards if c.id == args.card_id), None)
    if card is None:
        print(f"Unknown card: {args.card_id}", file=sys.stderr)
        return 2
    product = catalog.product(card.product_id)
    if product is None:
        print(f"Unknown card product: {card.product_id}", file=sys.stderr)
        return 2
    _dump(analyze(card, product, catalog, history.benefit_usage.get(card.id, []), now))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Credit card churn and retention rules engine")
    parser.add_argument("--catalog", default=settings.rules_catalog_path, help="Rule catalog file or directory")
    parser.add_argument("--cards", default=settings.card_history_path, help="Card history YAML file")
    parser.add_argument("--as-of", type=date.fromisoformat, help="Evaluate as of this date (YYYY-MM-DD)")
    parser.add_argument("-v", "--verbose", action="store_true")

    sub = parser.add_subparsers(required=True)

    ev = sub.add_parser("evaluate", help="Can I apply for this card and get the bonus?")
    ev.add_argument("product_id")
    ev.set_defaults(func=cmd_evaluate)

    iss = sub.add_parser("issuers", help="Safe/caution/blocked status per issuer")
    iss.set_defaults(func=cmd_issuers)

    five = sub.add_parser("524", help="5/24 count and drop-off schedule")
    five.set_defaults(func=cmd_524)

    tl = sub.add_parser("timeline", help="When each held product's bonus is next available")
    tl.set_defaults(func=cmd_timeline)

    ret = sub.add_parser("retention", help="Keep, cancel or downgrade held cards")
    ret.add_argument("card_id", nargs="?")
    ret.set_defaults(func=cmd_retention)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
