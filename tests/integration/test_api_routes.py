import json

import pytest
from fastapi import Header
from fastapi.testclient import TestClient

from tests.fakes import USER, make_raw_meeting
from timesync.main import create_app
from timesync.models.domain.review_domain import ReviewItem
from timesync.routes.dependencies import optional_intervals_client
from timesync.services.time_entry.intervals_client import TimeTrackingError

HEADERS = {"X-User-Email": "User@Example.com", "X-Intervals-Api-Key": "secret"}


def _ai_match(task_id: str, confidence: float) -> str:
    return json.dumps(
        {
            "matchedTasks": [
                {
                    "taskId": task_id,
                    "taskTitle": "Sprint Planning & Retro",
                    "meetingDetails": {
                        "subject": "Acme weekly",
                        "startTime": "2024-01-15T10:00:00Z",
                        "endTime": "2024-01-15T11:00:00Z",
                        "actualDuration": 3000,
                    },
                    "confidence": confidence,
                    "reason": "Weekly planning with the client",
                }
            ]
        }
    )


@pytest.fixture
def api(services, intervals):
    app = create_app(services)

    async def fake_client(x_intervals_api_key: str | None = Header(default=None)):
        yield intervals if x_intervals_api_key else None

    app.dependency_overrides[optional_intervals_client] = fake_client
    with TestClient(app) as client:
        yield client


def test_user_header_is_required(api):
    response = api.get("/meetings/posted")

    assert response.status_code == 401


def test_match_requires_api_key(api):
    response = api.post(
        "/meetings/match",
        json={"meetings": []},
        headers={"X-User-Email": USER},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Intervals API key is required"


def test_match_buckets_meetings(api, fake_ai):
    fake_ai.responses.append(json.dumps({"matchedTasks": []}))
    meetings = [
        {"subject": "Sprint Planning", "startTime": "2024-01-15T10:00:00Z", "endTime": "2024-01-15T11:00:00Z"},
        {"subject": "Coffee chat", "startTime": "2024-01-15T12:00:00Z", "endTime": "2024-01-15T12:30:00Z"},
    ]

    response = api.post("/meetings/match", json={"meetings": meetings}, headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["processed"] == 2
    assert data["total_meetings"] == 2
    assert data["next_batch"] is None
    assert data["matches"]["high"][0]["matched_task"]["id"] == "101"
    assert data["matches"]["unmatched"][0]["meeting"]["subject"] == "Coffee chat"
    assert data["matches"]["unmatched"][0]["reason"] == "No matching tasks found"


def test_match_rejects_negative_start_index(api):
    response = api.post("/meetings/match", json={"meetings": [], "start_index": -1}, headers=HEADERS)

    assert response.status_code == 422


@pytest.mark.parametrize(("upstream_status", "expected"), [(401, 400), (503, 502)])
def test_match_maps_catalog_errors(api, intervals, upstream_status, expected):
    intervals.catalog_error = TimeTrackingError(
        "Intervals error", error_code=str(upstream_status), status_code=upstream_status
    )

    response = api.post("/meetings/match", json={"meetings": []}, headers=HEADERS)

    assert response.status_code == expected


def test_sync_posts_and_lists_entries(api, intervals):
    response = api.post("/meetings/sync", json={"meetings": [make_raw_meeting()]}, headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["summary"]["posted"] == 1
    assert data["posted"][0]["hours"] == 0.83
    assert data["posted"][0]["time_entry_id"] == "te-1"
    assert len(intervals.posted) == 1

    posted = api.get("/meetings/posted", headers=HEADERS).json()
    assert posted["user_id"] == USER
    assert posted["total_count"] == 1
    assert posted["entries"][0]["meeting_id"] == "m-1"
    assert posted["last_posted_at"] is not None


def test_sync_second_run_reports_duplicate(api, intervals):
    api.post("/meetings/sync", json={"meetings": [make_raw_meeting()]}, headers=HEADERS)

    data = api.post("/meetings/sync", json={"meetings": [make_raw_meeting()]}, headers=HEADERS).json()

    assert data["duplicates"] == ["m-1"]
    assert data["summary"]["posted"] == 0
    assert len(intervals.posted) == 1


def test_review_flow(api, fake_ai, intervals):
    fake_ai.responses.append(_ai_match("101", 0.4))
    sync = api.post(
        "/meetings/sync",
        json={"meetings": [make_raw_meeting(subject="Acme weekly")]},
        headers=HEADERS,
    ).json()
    assert sync["queued_for_review"] == ["m-1"]

    pending = api.get("/reviews", headers=HEADERS).json()
    assert pending["total_count"] == 1
    review = pending["reviews"][0]
    assert review["duration_seconds"] == 3000
    assert review["suggested_tasks"][0]["id"] == "101"

    response = api.post(
        "/reviews",
        json={"meeting_id": "m-1", "status": "approved", "task_id": "101"},
        headers=HEADERS,
    )
    assert response.status_code == 200
    assert response.json() == {
        "meeting_id": "m-1",
        "status": "approved",
        "outcome": "posted",
        "time_entry_id": "te-1",
        "ledger_confirmed": True,
    }
    assert intervals.posted[0].hours == 0.83

    stats = api.get("/reviews/stats", headers=HEADERS).json()
    assert stats["total_pending"] == 0
    assert stats["total_reviewed"] == 1
    assert stats["approval_rate"] == 100.0

    again = api.post("/reviews", json={"meeting_id": "m-1", "status": "rejected"}, headers=HEADERS)
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "already_decided"


def test_review_approval_without_api_key(api, services):
    services.reviews.queue(
        ReviewItem(
            id="m-1",
            user_id=USER,
            subject="Acme weekly",
            start_time="2024-01-15T10:00:00Z",
            end_time="2024-01-15T11:00:00Z",
            duration_seconds=3000,
        )
    )

    response = api.post(
        "/reviews",
        json={"meeting_id": "m-1", "status": "approved", "task_id": "101"},
        headers={"X-User-Email": USER},
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "missing_api_key"
    assert services.reviews.get(USER, "m-1").is_pending()


def test_unknown_review_is_not_found(api):
    response = api.post("/reviews", json={"meeting_id": "nope", "status": "rejected"}, headers=HEADERS)

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "not_found"


def test_review_rejects_pending_status(api):
    response = api.post("/reviews", json={"meeting_id": "m-1", "status": "pending"}, headers=HEADERS)

    assert response.status_code == 422


def test_reviews_are_scoped_to_user(api, fake_ai):
    fake_ai.responses.append(_ai_match("101", 0.4))
    api.post("/meetings/sync", json={"meetings": [make_raw_meeting(subject="Acme weekly")]}, headers=HEADERS)

    other = api.get("/reviews", headers={"X-User-Email": "other@example.com"}).json()

    assert other["total_count"] == 0
