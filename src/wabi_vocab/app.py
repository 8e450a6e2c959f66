from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Literal

from fastapi import Body, FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from . import db, vocab_lists
from .errors import (
    ConflictError,
    InvalidRatingError,
    NotFoundError,
    ValidationError,
    WabiVocabError,
)
from .importer import load_deck, save_deck
from .models import Card
from .session import StudySession, daily_goal_progress, next_card_to_learn, streak_days
from .srs import (
    apply_rating,
    get_difficult_cards,
    get_due_cards,
    get_new_cards,
    get_statistics,
    mark_difficult,
    predict_progress,
)

logger = logging.getLogger(__name__)

LOG_LEVEL = os.environ.get("WABI_VOCAB_LOG_LEVEL", "INFO").upper()

# Per-list study sessions; they last as long as the server process.
_sessions: dict[str, StudySession] = {}

# Ensure the store exists even when lifespan hooks are not triggered (e.g. in tests).
db.init_db()


@asynccontextmanager
async def lifespan(_: FastAPI):
    db.init_db()
    yield


app = FastAPI(title="Wabi-Sabi Vocab", lifespan=lifespan)


@app.exception_handler(WabiVocabError)
async def wabi_vocab_exception_handler(request: Request, exc: WabiVocabError):
    """Translate trainer errors into JSON responses; stored progress is untouched."""
    if isinstance(exc, InvalidRatingError):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, ValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ConflictError):
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


class RatingIn(BaseModel):
    rating: int


class DifficultIn(BaseModel):
    flagged: bool = True


class AppSettingsIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    daily_goal: int = Field(20, ge=1, alias="dailyGoal")
    auto_pronounce: bool = Field(False, alias="autoPronounce")
    show_examples: bool = Field(True, alias="showExamples")
    theme: str = "wabi-sabi"


class CurrentListIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    list_id: str = Field(..., alias="listId")


def _daily_goal() -> int:
    return int(db.load_app_settings().get("dailyGoal") or 20)


def _session(list_id: str) -> StudySession:
    return _sessions.setdefault(list_id, StudySession())


def _find_card(cards: list[Card], card_id: str) -> int:
    for index, card in enumerate(cards):
        if card.id == card_id:
            return index
    raise NotFoundError(f"Card '{card_id}' not found")


def _cards_payload(cards: list[Card]) -> list[dict[str, Any]]:
    return [dict(card.to_dict()) for card in cards]


@app.get("/api/lists")
async def list_vocab_lists() -> dict[str, Any]:
    return {
        "currentListId": db.load_current_list(),
        "lists": list(db.get_all_lists_progress().values()),
    }


@app.get("/api/lists/{list_id}/cards")
async def list_cards(
    list_id: str,
    mode: Literal["due", "new", "difficult", "all"] = "due",
) -> dict[str, Any]:
    deck = load_deck(list_id)
    if mode == "due":
        selected = get_due_cards(deck)
    elif mode == "new":
        selected = get_new_cards(deck, _daily_goal())
    elif mode == "difficult":
        selected = get_difficult_cards(deck)
    else:
        selected = deck
    return {
        "listId": list_id,
        "mode": mode,
        "count": len(selected),
        "cards": _cards_payload(selected),
    }


@app.post("/api/lists/{list_id}/cards/{card_id}/rating")
async def rate_card(list_id: str, card_id: str, payload: RatingIn) -> dict[str, Any]:
    deck = load_deck(list_id)
    index = _find_card(deck, card_id)
    updated = apply_rating(deck[index], payload.rating)
    deck[index] = updated
    save_deck(list_id, deck)
    session = _session(list_id)
    session.record(payload.rating)
    logger.info("Rated %s in %s: %d", card_id, list_id, payload.rating)
    return {
        "card": updated.to_dict(),
        "statistics": get_statistics(deck).to_dict(),
        "session": session.to_dict(),
    }


@app.post("/api/lists/{list_id}/cards/{card_id}/difficult")
async def flag_card(list_id: str, card_id: str, payload: DifficultIn | None = None) -> dict[str, Any]:
    flagged = payload.flagged if payload is not None else True
    deck = load_deck(list_id)
    index = _find_card(deck, card_id)
    deck[index] = mark_difficult(deck[index], flagged)
    db.save_list_progress(list_id, deck)
    return {"card": deck[index].to_dict()}


@app.get("/api/lists/{list_id}/statistics")
async def deck_statistics(list_id: str) -> dict[str, Any]:
    return get_statistics(load_deck(list_id)).to_dict()


@app.get("/api/lists/{list_id}/forecast")
async def deck_forecast(list_id: str, daily_reviews: int = 100) -> dict[str, Any]:
    forecast = predict_progress(load_deck(list_id), _daily_goal(), daily_reviews)
    return forecast.to_dict()


@app.get("/api/lists/{list_id}/today")
async def today_progress(list_id: str) -> dict[str, Any]:
    deck = load_deck(list_id)
    goal = _daily_goal()
    next_card = next_card_to_learn(deck, goal)
    return {
        **daily_goal_progress(deck, goal),
        "dueReviews": len(get_due_cards(deck)),
        "streakDays": streak_days(db.load_list_stats(list_id)),
        "nextCard": next_card.to_dict() if next_card is not None else None,
        "session": _session(list_id).to_dict(),
    }


@app.get("/api/lists/{list_id}/export")
async def export_progress(list_id: str) -> dict[str, Any]:
    return db.export_list_progress(list_id)


@app.post("/api/import")
async def import_progress(payload: Any = Body(...)) -> dict[str, Any]:
    list_id = db.import_list_progress(payload)
    return {"listId": list_id, "imported": True}


@app.delete("/api/lists/{list_id}/progress")
async def reset_list_progress(list_id: str) -> dict[str, Any]:
    if not vocab_lists.list_exists(list_id):
        raise NotFoundError(f"List '{list_id}' does not exist")
    db.clear_list_progress(list_id)
    _sessions.pop(list_id, None)
    return {"listId": list_id, "cleared": True}


@app.get("/api/settings")
async def get_settings() -> dict[str, Any]:
    return db.load_app_settings()


@app.put("/api/settings")
async def update_settings(payload: AppSettingsIn) -> dict[str, Any]:
    db.save_app_settings(payload.model_dump(by_alias=True))
    return db.load_app_settings()


@app.put("/api/settings/current-list")
async def update_current_list(payload: CurrentListIn) -> dict[str, Any]:
    if not vocab_lists.list_exists(payload.list_id):
        raise NotFoundError(f"List '{payload.list_id}' does not exist")
    db.save_current_list(payload.list_id)
    return {"currentListId": payload.list_id}


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("wabi_vocab.app:app", host="127.0.0.1", port=8000, reload=True)


if __name__ == "__main__":
    main()
