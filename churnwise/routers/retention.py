from datetime import date

from fastapi import APIRouter, HTTPException, Query, Request

from churnwise.rate_limit import EVALUATION_LIMIT, limiter
from churnwise.schemas.request import CardHistoryIn
from churnwise.schemas.verdict import RetentionPortfolio, RetentionVerdict
from churnwise.services.catalog_loader import get_catalog, parse_card_history
from churnwise.services.retention import analyze, analyze_portfolio
from churnwise.utils.timezone import get_today

router = APIRouter(prefix="/api/retention", tags=["retention"])


@router.post("", response_model=RetentionPortfolio)
@limiter.limit(EVALUATION_LIMIT)
def analyze_portfolio_endpoint(request: Request, data: CardHistoryIn, as_of: date | None = Query(None)):
    catalog = get_catalog()
    history = parse_card_history(data.model_dump(), catalog)
    portfolio = analyze_portfolio(history.cards, catalog, history.benefit_usage, as_of or get_today())
    return portfolio.model_copy(update={"warnings": history.warnings + portfolio.warnings})


@router.post("/{card_id}", response_model=RetentionVerdict)
@limiter.limit(EVALUATION_LIMIT)
def analyze_card_endpoint(
    request: Request,
    card_id: str,
    data: CardHistoryIn,
    as_of: date | None = Query(None),
):
    catalog = get_catalog()
    history = parse_card_history(data.model_dump(), catalog)
    card = next((c for c in history.cards if c.id == card_id), None)
    if not card:
        raise HTTPException(status_code=404, detail="Card not found")
    product = catalog.product(card.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Card product not found")
    verdict = analyze(card, product, catalog, history.benefit_usage.get(card.id, []), as_of or get_today())
    return verdict.model_copy(update={"warnings": history.warnings + verdict.warnings})
