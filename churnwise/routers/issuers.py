from datetime import date

from fastapi import APIRouter, Query, Request

from churnwise.rate_limit import EVALUATION_LIMIT, limiter
from churnwise.schemas.request import CardHistoryIn
from churnwise.schemas.verdict import FiveTwentyFourStatus, IssuerStatus
from churnwise.services.catalog_loader import get_catalog, parse_card_history
from churnwise.services.issuer_status import summarize
from churnwise.services.velocity import five_twenty_four_details
from churnwise.utils.timezone import get_today

router = APIRouter(prefix="/api/issuers", tags=["issuers"])


@router.post("/status", response_model=list[IssuerStatus])
@limiter.limit(EVALUATION_LIMIT)
def issuer_status_endpoint(request: Request, data: CardHistoryIn, as_of: date | None = Query(None)):
    catalog = get_catalog()
    history = parse_card_history(data.model_dump(), catalog)
    statuses = summarize(history.cards, catalog, as_of or get_today())
    return [s.model_copy(update={"warnings": history.warnings + s.warnings}) for s in statuses]


@router.post("/524", response_model=FiveTwentyFourStatus)
@limiter.limit(EVALUATION_LIMIT)
def five_twenty_four_endpoint(request: Request, data: CardHistoryIn, as_of: date | None = Query(None)):
    history = parse_card_history(data.model_dump(), get_catalog())
    details = five_twenty_four_details(history.cards, as_of or get_today())
    return details.model_copy(update={"warnings": history.warnings + details.warnings})
