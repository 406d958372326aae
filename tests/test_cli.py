"""Tests for CLI commands."""

import argparse
import uuid

import httpx
import pytest
import pytest_asyncio

from koda.__main__ import cmd_due, cmd_reset, cmd_study, ensure_db, main
from koda.database import async_session, engine
from koda.models import Card, Deck
from koda.srs.errors import NotFound
from koda.stores.http import HttpStore
from koda.stores.sql import SqlAlchemyStore


@pytest_asyncio.fixture(autouse=True)
async def dispose_engine():
    """Drop pooled connections so each test's event loop starts clean."""
    yield
    await engine.dispose()


async def seed_deck(cards: int = 1) -> str:
    """Create a deck with fresh cards in the default database."""
    await ensure_db()
    deck_id = str(uuid.uuid4())
    async with async_session() as db:
        db.add(Deck(id=deck_id, name="CLI test deck"))
        for i in range(cards):
            db.add(Card(deck_id=deck_id, front=f"front {i}", back=f"back {i}"))
        await db.commit()
    return deck_id


@pytest.mark.asyncio
async def test_ensure_db() -> None:
    """Database tables can be created."""
    await ensure_db()


@pytest.mark.asyncio
async def test_due_lists_new_cards(capsys: pytest.CaptureFixture[str]) -> None:
    deck_id = await seed_deck(cards=2)
    await cmd_due(argparse.Namespace(deck_id=deck_id, limit=None))
    out = capsys.readouterr().out
    assert "0 cards due, 2 new cards available" in out
    assert "front 0" in out


@pytest.mark.asyncio
async def test_due_unknown_deck(capsys: pytest.CaptureFixture[str]) -> None:
    await ensure_db()
    await cmd_due(argparse.Namespace(deck_id="no-such-deck", limit=None))
    assert "not found" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_study_until_mastered(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    deck_id = await seed_deck(cards=1)
    # Flip then rate Easy, three times: new -> learning -> review -> mastered
    answers = iter(["", "4", "", "4", "", "4"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))

    await cmd_study(argparse.Namespace(deck_id=deck_id, max_cards=10))

    out = capsys.readouterr().out
    assert "Session Complete!" in out
    assert "Mastered: 1" in out


@pytest.mark.asyncio
async def test_study_rejects_bad_rating(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    deck_id = await seed_deck(cards=1)
    answers = iter(["", "9", "q"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))

    await cmd_study(argparse.Namespace(deck_id=deck_id, max_cards=10))

    out = capsys.readouterr().out
    assert "Please enter 1, 2, 3 or 4." in out
    assert "Session ended early" in out


@pytest.mark.asyncio
async def test_reset(capsys: pytest.CaptureFixture[str]) -> None:
    deck_id = await seed_deck(cards=3)
    await cmd_reset(argparse.Namespace(deck_id=deck_id))
    assert "Progress reset for 3 cards." in capsys.readouterr().out


def test_main_without_command_prints_help(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr("sys.argv", ["koda"])
    main()
    assert "usage: koda" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_study_reports_deleted_card(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    deck_id = await seed_deck(cards=1)

    async def missing(self, card_id, state):
        raise NotFound("Card", card_id)

    monkeypatch.setattr(SqlAlchemyStore, "update_card", missing)
    answers = iter(["", "3", "q"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))

    await cmd_study(argparse.Namespace(deck_id=deck_id, max_cards=10))

    out = capsys.readouterr().out
    assert "not found in the store" in out
    assert "Session ended early" in out


@pytest.mark.asyncio
async def test_due_against_remote_api(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    card = {
        "id": "card-1",
        "deckId": "deck-1",
        "front": "remote front",
        "back": "remote back",
        "stage": "new",
        "interval": 1.0,
        "easeFactor": 2.5,
        "nextReviewAt": "2026-04-01T08:00:00.000Z",
        "createdAt": "2026-03-01T08:00:00.000Z",
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/cards/deck/deck-1"
        return httpx.Response(200, json={"cards": [card]})

    def remote_store() -> HttpStore:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test/api")
        return HttpStore(client=client)

    monkeypatch.setattr("koda.__main__.HttpStore", remote_store)
    await cmd_due(argparse.Namespace(deck_id="deck-1", limit=None, remote=True))

    out = capsys.readouterr().out
    assert "0 cards due, 1 new cards available" in out
    assert "remote front" in out
