from datetime import date

from fastapi import APIRouter, HTTPException, Query, Request

from churnwise.rate_limit import EVALUATION_LIMIT, limiter
from churnwise.schemas.request import CardHistoryIn
from churnwise.schemas.verdict import BonusTimeline, EligibilityVerdict
from churnwise.services.catalog_loader import get_catalog, parse_card_history
from churnwise.services.eligibility import bonus_timeline, evaluate
from churnwise.utils.timezone import get_today

router = APIRouter(prefix="/api/eligibility", tags=["eligibility"])


@router.post("/timeline", response_model=BonusTimeline)
@limiter.limit(EVALUATION_LIMIT)
def bonus_timeline_endpoint(
    request: Request,
    data: CardHistoryIn,
    as_of: date | None = Query(None),
):
    catalog = get_catalog()
    history = parse_card_history(data.model_dump(), catalog)
    timeline = bonus_timeline(history.cards, catalog, as_of or get_today())
    return timeline.model_copy(update={"warnings": history.warnings + timeline.warnings})


@router.post("/{product_id:path}", response_model=EligibilityVerdict)
@limiter.limit(EVALUATION_LIMIT)
def evaluate_endpoint(
    request: Request,
    product_id: str,
    data: CardHistoryIn,
    as_of: date | None = Query(None),
):
    catalog = get_catalog()
    product = catalog.product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Card product not found")
    history = parse_card_history(data.model_dump(), catalog)
    verdict = evaluate(product, history.cards, catalog, as_of or get_today())
    return verdict.model_copy(update={"warnings": history.warnings + verdict.warnings})
