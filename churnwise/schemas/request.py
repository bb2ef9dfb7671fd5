from pydantic import BaseModel


class CardHistoryIn(BaseModel):
    """Raw card history as posted by the UI; records are validated one by one."""

    cards: list[dict] = []
    benefit_usage: dict[str, list[dict]] = {}
