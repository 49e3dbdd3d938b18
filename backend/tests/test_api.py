"""API route tests against a local JSON store; lifespan disabled, dependencies wired by hand."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.answers import AnswerService
from api.app import create_app
from api.dependencies import init_dependencies, reset_dependencies
from scheduler.service import SchedulerService
from shared.models.domain import Prediction
from shared.models.enums import PredictionStatus
from verifier.collector import Collector
from verifier.engine import ConsensusVerifier
from verifier.registry import sources_from_seeds
from verifier.store.local import LocalFilePredictionStore

NOON = datetime(2025, 8, 8, 12, 0, tzinfo=timezone.utc)
MIDNIGHT = datetime(2025, 8, 8, 0, 0, tzinfo=timezone.utc)


def seeded(numbering, game_number: int, status: PredictionStatus, word: Optional[str], confidence: float) -> Prediction:
    return Prediction(
        game_number=game_number,
        date=numbering.date_for_game_number(game_number),
        predicted_word=word,
        status=status,
        confidence_score=confidence,
    )


def build_app(store, settings, registry, numbering, transport) -> FastAPI:
    collector = Collector(registry, store, numbering, settings, transport=transport)
    verifier = ConsensusVerifier(collector, registry, store, numbering, settings)
    # Before the daily cutoff so a started loop stays idle.
    scheduler = SchedulerService(verifier, store, numbering, settings, now=lambda: MIDNIGHT)
    init_dependencies(AnswerService(store, scheduler, numbering, now=lambda: NOON), store)
    return create_app(use_lifespan=False)


@pytest.fixture
def seeded_store(tmp_path: Path, settings, numbering) -> LocalFilePredictionStore:
    path = tmp_path / "predictions.json"
    predictions = [
        seeded(numbering, 1507, PredictionStatus.REJECTED, None, 0.0),
        seeded(numbering, 1508, PredictionStatus.CANDIDATE, "PLUMB", 0.5),
        seeded(numbering, 1509, PredictionStatus.VERIFIED, "GROAN", 0.9),
        seeded(numbering, 1510, PredictionStatus.VERIFIED, "STORK", 0.87),
        seeded(numbering, 1511, PredictionStatus.CANDIDATE, "CRISP", 0.6),
    ]
    document = {
        "predictions": [p.model_dump(mode="json") for p in predictions],
        "collection_logs": [],
        "verification_sources": [s.model_dump(mode="json") for s in sources_from_seeds(settings.sources)],
    }
    path.write_text(json.dumps(document), encoding="utf-8")
    return LocalFilePredictionStore(path)


@pytest.fixture
def client(seeded_store, settings, registry, numbering, page, transport_for) -> Iterator[TestClient]:
    transport = transport_for({
        "tomsguide.test": page("GROAN"),
        "techradar.test": page("GROAN"),
        "wordtips.test": page("GROAN"),
    })
    app = build_app(seeded_store, settings, registry, numbering, transport)
    with TestClient(app) as c:
        yield c
    reset_dependencies()


# ── System ──────────────────────────────────────────────────────────────

def test_health_returns_ok(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": "api"}
    assert "X-Request-ID" in r.headers


def test_ready_reports_store(client: TestClient) -> None:
    r = client.get("/ready")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "store": "local", "store_ok": True}


def test_ready_without_dependencies_is_degraded() -> None:
    reset_dependencies()
    with TestClient(create_app(use_lifespan=False)) as c:
        assert c.get("/ready").json()["status"] == "degraded"


# ── Reads ───────────────────────────────────────────────────────────────

def test_today_prediction(client: TestClient) -> None:
    r = client.get("/v1/predictions/today")
    assert r.status_code == 200
    body = r.json()
    assert body["game_number"] == 1511
    assert body["predicted_word"] == "CRISP"
    assert body["status"] == "candidate"
    assert body["verified_word"] is None


def test_today_is_null_when_nothing_collected(tmp_path: Path, settings, registry, numbering, transport_for) -> None:
    store = LocalFilePredictionStore(tmp_path / "empty.json")
    app = build_app(store, settings, registry, numbering, transport_for({}))
    with TestClient(app) as c:
        r = c.get("/v1/predictions/today")
        assert r.status_code == 200
        assert r.json() is None
        assert c.get("/v1/predictions/history").json() == []
        assert c.get("/v1/predictions/stats").json()["total"] == 0
    reset_dependencies()


def test_prediction_by_game_number(client: TestClient) -> None:
    r = client.get("/v1/predictions/1509")
    assert r.status_code == 200
    assert r.json()["verified_word"] == "GROAN"
    assert r.json()["date"] == "2025-08-06"


def test_unknown_game_number_is_404(client: TestClient) -> None:
    r = client.get("/v1/predictions/9999")
    assert r.status_code == 404
    assert r.json()["message"] == "No prediction for game #9999"


def test_history_newest_first(client: TestClient) -> None:
    r = client.get("/v1/predictions/history")
    assert [p["game_number"] for p in r.json()] == [1510, 1509]
    assert [p["game_number"] for p in client.get("/v1/predictions/history?limit=1").json()] == [1510]


def test_history_limit_is_validated(client: TestClient) -> None:
    assert client.get("/v1/predictions/history?limit=0").status_code == 422
    assert client.get("/v1/predictions/candidates?limit=101").status_code == 422


def test_candidates_oldest_first(client: TestClient) -> None:
    r = client.get("/v1/predictions/candidates")
    assert [p["game_number"] for p in r.json()] == [1508, 1511]


def test_stats(client: TestClient) -> None:
    body = client.get("/v1/predictions/stats").json()
    assert body["total"] == 5
    assert body["verified"] == 2
    assert body["candidates"] == 2
    assert body["verification_rate"] == pytest.approx(0.4)


def test_sources(client: TestClient) -> None:
    names = {s["name"] for s in client.get("/v1/sources").json()}
    assert names == {"tomsguide", "techradar", "wordtips"}


# ── Admin ───────────────────────────────────────────────────────────────

def test_scheduler_status(client: TestClient) -> None:
    body = client.get("/v1/admin/scheduler").json()
    assert body["status"]["is_running"] is False
    assert body["status"]["phase"] == "not_due"
    assert body["status"]["current_game_number"] == 1511
    assert body["recent_tasks"] == []


def test_scheduler_start_and_stop(client: TestClient) -> None:
    started = client.post("/v1/admin/scheduler/start").json()
    assert started["task"] == "start_scheduler"
    assert started["message"] == "scheduler started"
    assert client.post("/v1/admin/scheduler/start").json()["message"] == "scheduler already running"
    assert client.get("/v1/admin/scheduler").json()["status"]["is_running"] is True

    stopped = client.post("/v1/admin/scheduler/stop").json()
    assert stopped["message"] == "scheduler stopping"
    assert client.post("/v1/admin/scheduler/stop").json()["message"] == "scheduler not running"


def test_run_daily_upgrades_today(client: TestClient) -> None:
    r = client.post("/v1/admin/run/daily")
    assert r.status_code == 200
    result = r.json()
    assert result["task"] == "daily_collection"
    assert result["success"] is True
    assert result["game_number"] == 1511

    today = client.get("/v1/predictions/today").json()
    assert today["status"] == "verified"
    assert today["verified_word"] == "GROAN"
    assert client.get("/v1/admin/scheduler").json()["recent_tasks"][0]["task"] == "daily_collection"


def test_run_verify_creates_prediction(client: TestClient) -> None:
    result = client.post("/v1/admin/run/verify/1512").json()
    assert result["success"] is True
    assert client.get("/v1/predictions/1512").json()["verified_word"] == "GROAN"


def test_backfill_rejects_inverted_range(client: TestClient) -> None:
    r = client.post("/v1/admin/run/backfill", json={"start_game_number": 1510, "end_game_number": 1500})
    assert r.status_code == 200
    assert r.json()["success"] is False
    assert "start is after end" in r.json()["message"]


def test_backfill_explicit_range(client: TestClient) -> None:
    r = client.post("/v1/admin/run/backfill", json={"start_game_number": 1508, "end_game_number": 1510})
    assert r.json()["message"] == "backfill 1508..1510: processed 1, verified 1, skipped 2, failed 0"


def test_manual_override(client: TestClient) -> None:
    r = client.put("/v1/admin/predictions/1511", json={"status": "verified", "confidence": 0.95})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "verified"
    assert body["verified_word"] == "CRISP"
    assert body["confidence_score"] == 0.95

    demoted = client.put("/v1/admin/predictions/1511", json={"status": "rejected", "word": "plumb"}).json()
    assert demoted["verified_word"] is None
    assert demoted["predicted_word"] == "PLUMB"


@pytest.mark.parametrize(
    "payload",
    [
        {"status": "verified", "word": "abc"},
        {"status": "candidate", "confidence": 1.5},
        {"status": "unknown"},
    ],
)
def test_manual_override_validation(client: TestClient, payload: dict) -> None:
    assert client.put("/v1/admin/predictions/1511", json=payload).status_code == 422


def test_verified_override_needs_a_word(client: TestClient) -> None:
    r = client.put("/v1/admin/predictions/1507", json={"status": "verified"})
    assert r.status_code == 422


def test_manual_override_unknown_game(client: TestClient) -> None:
    r = client.put("/v1/admin/predictions/9999", json={"status": "verified", "word": "GROAN"})
    assert r.status_code == 404
