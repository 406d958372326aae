"""Remote stores speaking the Koda REST API over httpx.

The server owns scheduling: each review is posted as an outcome to
``POST /study/review``, which reschedules the card and writes its history
entry in one request. Card state is never written directly.

Transport errors and 5xx responses are retried with exponential backoff.
Review posts are not idempotent and are only retried when the connection
was never made.
Once retries run out the failure surfaces as ``TransientStoreFailure`` and
the study session carries on offline. A 404 is a ``NotFound`` and is never
retried.
"""

import logging
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from koda.config import settings
from koda.srs.errors import NotFound, TransientStoreFailure
from koda.srs.memory import CardMemoryState, Stage, StudyCard, days
from koda.srs.outcome import ReviewRecord
from koda.stores.ports import Stores, StudySessionRecord

logger = logging.getLogger(__name__)


class _Retryable(Exception):
    """Internal marker for failures worth another attempt."""


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CardPayload(_Payload):
    id: str
    deck_id: str
    front: str = ""
    back: str = ""
    stage: Stage
    interval: float  # Days
    ease_factor: float
    next_review_at: datetime
    review_count: int = 0
    consecutive_correct: int = 0
    created_at: datetime

    def to_domain(self) -> StudyCard:
        return StudyCard(
            id=self.id,
            deck_id=self.deck_id,
            front=self.front,
            back=self.back,
            created_at=_naive_utc(self.created_at),
            state=CardMemoryState(
                stage=self.stage,
                interval=days(self.interval),
                ease_factor=self.ease_factor,
                consecutive_correct=self.consecutive_correct,
                review_count=self.review_count,
                next_review_at=_naive_utc(self.next_review_at),
            ),
        )


class SessionPayload(_Payload):
    id: str
    deck_id: str
    session_type: str = "mixed"
    cards_studied: int = 0
    cards_correct: int = 0
    total_time: int = 0
    completed_at: datetime | None = None

    def to_domain(self) -> StudySessionRecord:
        return StudySessionRecord(
            id=self.id,
            deck_id=self.deck_id,
            session_type=self.session_type,
            cards_studied=self.cards_studied,
            cards_correct=self.cards_correct,
            total_time=self.total_time,
            completed_at=_naive_utc(self.completed_at) if self.completed_at else None,
        )


class HttpStore:
    """Implements the card, review history and session stores against the REST API."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        max_retries: int | None = None,
        backoff_min: float | None = None,
        backoff_max: float | None = None,
    ) -> None:
        self.client = client or httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=settings.api_timeout_seconds,
        )
        self.max_retries = max_retries if max_retries is not None else settings.api_max_retries
        self.backoff_min = backoff_min if backoff_min is not None else settings.api_backoff_min_seconds
        self.backoff_max = backoff_max if backoff_max is not None else settings.api_backoff_max_seconds

    def as_stores(self) -> Stores:
        return Stores(cards=self, history=self, sessions=self, applies_reviews=True)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _send_once(self, method: str, path: str, json: Any, idempotent: bool) -> httpx.Response:
        try:
            response = await self.client.request(method, path, json=json)
        except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
            logger.info("%s %s could not connect: %s", method, path, exc)
            raise _Retryable(str(exc)) from exc
        except httpx.TransportError as exc:
            logger.info("%s %s failed: %s", method, path, exc)
            if not idempotent:
                raise TransientStoreFailure(f"{method} {path}: {exc}") from exc
            raise _Retryable(str(exc)) from exc
        if response.status_code >= 500 and idempotent:
            logger.info("%s %s returned %d", method, path, response.status_code)
            raise _Retryable(f"Server error {response.status_code}")
        return response

    async def _request(
        self,
        method: str,
        path: str,
        kind: str,
        identifier: str,
        json: Any = None,
        idempotent: bool = True,
    ) -> dict[str, Any]:
        """Send a request with retries and decode the JSON body.

        Raises:
            NotFound: on a 404.
            TransientStoreFailure: when retries are exhausted or the request is rejected.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.max_retries)),
            wait=wait_exponential(multiplier=self.backoff_min, min=self.backoff_min, max=self.backoff_max),
            retry=retry_if_exception_type(_Retryable),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._send_once(method, path, json, idempotent)
        except _Retryable as exc:
            raise TransientStoreFailure(f"{method} {path}: {exc}") from exc

        if response.status_code == 404:
            raise NotFound(kind, identifier)
        if response.is_error:
            raise TransientStoreFailure(f"{method} {path} rejected with {response.status_code}")
        if not response.content:
            return {}
        return response.json()

    # --- Cards ---

    async def get_card(self, card_id: str) -> StudyCard:
        body = await self._request("GET", f"/cards/{card_id}", "Card", card_id)
        return CardPayload.model_validate(body["card"]).to_domain()

    async def update_card(self, card_id: str, state: CardMemoryState) -> None:
        # PUT /cards/{id} only edits content, so there is no route for scheduling state
        raise NotImplementedError("The remote API reschedules cards from posted reviews")

    async def list_cards_for_deck(self, deck_id: str) -> list[StudyCard]:
        body = await self._request("GET", f"/cards/deck/{deck_id}", "Deck", deck_id)
        return [CardPayload.model_validate(card).to_domain() for card in body.get("cards", [])]

    async def reset_deck_progress(self, deck_id: str) -> int:
        body = await self._request("POST", f"/decks/{deck_id}/reset-progress", "Deck", deck_id)
        return int(body.get("cardsReset", 0))

    # --- Review history ---

    async def append_review_record(self, record: ReviewRecord) -> None:
        """Post a review outcome; the server reschedules the card and logs it."""
        payload = {
            "cardId": record.card_id,
            "quality": record.quality,
            "responseTime": record.response_time_ms,
            "wasCorrect": record.was_correct,
        }
        if record.session_id is not None:
            payload["sessionId"] = record.session_id
        await self._request(
            "POST", "/study/review", "Card", record.card_id, json=payload, idempotent=False
        )

    # --- Sessions ---

    async def create_session(self, deck_id: str, session_type: str) -> StudySessionRecord:
        body = await self._request(
            "POST",
            "/study/session",
            "Deck",
            deck_id,
            json={"deckId": deck_id, "sessionType": session_type},
        )
        return SessionPayload.model_validate(body["session"]).to_domain()

    async def complete_session(
        self,
        session_id: str,
        cards_studied: int,
        cards_correct: int,
        total_time: int,
    ) -> StudySessionRecord:
        body = await self._request(
            "PUT",
            f"/study/session/{session_id}/complete",
            "Study session",
            session_id,
            json={
                "cardsStudied": cards_studied,
                "cardsCorrect": cards_correct,
                "totalTime": total_time,
            },
        )
        return SessionPayload.model_validate(body["session"]).to_domain()
