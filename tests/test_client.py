"""Tests for the import API client and its status polling."""

import json

import httpx
import pytest

from src.client import ImportClient, PollingTimeout


def batch_snapshot(status, success=0, failed=0, total=None):
    return {
        "id": "b1",
        "repository_url": "https://example.com/recipes.json",
        "status": status,
        "total_recipes": total,
        "successful_imports": success,
        "failed_imports": failed,
        "error_log": [],
        "started_at": "2024-05-01T12:00:00Z",
        "completed_at": "2024-05-01T12:01:00Z" if status in ("completed", "failed") else None,
    }


class FakeServer:
    """Serves a scripted sequence of batch snapshots."""

    def __init__(self, snapshots):
        self.snapshots = list(snapshots)
        self.status_requests = 0
        self.last_request = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.last_request = request
        if request.method == "POST" and request.url.path == "/api/v1/imports":
            return httpx.Response(202, json={"batch_id": "b1", "status": "pending"})
        if request.url.path == "/api/v1/imports/b1":
            index = min(self.status_requests, len(self.snapshots) - 1)
            self.status_requests += 1
            return httpx.Response(200, json=self.snapshots[index])
        if request.url.path == "/api/v1/recipes/search":
            return httpx.Response(200, json=[])
        return httpx.Response(404, json={"detail": "Import batch not found"})


@pytest.fixture
def sleeps():
    return []


def make_client(server, sleeps):
    return ImportClient(
        "http://testserver/", transport=httpx.MockTransport(server), sleep=sleeps.append
    )


def test_start_import():
    server = FakeServer([])
    with make_client(server, []) as client:
        assert client.start_import("https://example.com/recipes.json", created_by="eve") == "b1"
    assert json.loads(server.last_request.content) == {
        "repository_url": "https://example.com/recipes.json",
        "created_by": "eve",
    }


def test_get_status_unknown_batch(sleeps):
    with make_client(FakeServer([]), sleeps) as client:
        assert client.get_status("missing") is None


def test_wait_for_batch_until_terminal(sleeps):
    """Test that polling stops at the first terminal snapshot."""
    server = FakeServer(
        [
            batch_snapshot("pending"),
            batch_snapshot("in_progress", success=1, total=3),
            batch_snapshot("completed", success=2, failed=1, total=3),
        ]
    )
    seen = []

    with make_client(server, sleeps) as client:
        final = client.wait_for_batch("b1", interval=0.5, on_update=seen.append)

    assert final.status == "completed"
    assert final.successful_imports == 2
    assert [snapshot.status.value for snapshot in seen] == ["pending", "in_progress", "completed"]
    assert server.status_requests == 3
    # Fixed interval between polls, none after the terminal one
    assert sleeps == [0.5, 0.5]


def test_wait_for_batch_gives_up(sleeps):
    server = FakeServer([batch_snapshot("in_progress", total=10)])

    with make_client(server, sleeps) as client:
        with pytest.raises(PollingTimeout) as exc_info:
            client.wait_for_batch("b1", interval=1.0, max_polls=3)

    assert exc_info.value.batch_id == "b1"
    assert exc_info.value.last_seen.status == "in_progress"
    assert server.status_requests == 3
    assert sleeps == [1.0, 1.0]


def test_wait_for_batch_can_be_cancelled(sleeps):
    """Test that the caller can stop polling without touching the batch."""
    server = FakeServer([batch_snapshot("in_progress", total=10)])
    checks = iter([False, False, True])

    with make_client(server, sleeps) as client:
        last = client.wait_for_batch("b1", interval=1.0, should_stop=lambda: next(checks))

    assert last.status == "in_progress"
    assert server.status_requests == 2
    assert server.last_request.method == "GET"


def test_wait_for_unknown_batch(sleeps):
    with make_client(FakeServer([]), sleeps) as client:
        assert client.wait_for_batch("missing", interval=1.0) is None
    assert sleeps == []


def test_search_builds_query(sleeps):
    server = FakeServer([])
    with make_client(server, sleeps) as client:
        assert client.search("chicken", tags=["Quick", "Dinner"], limit=10, page=2) == []
    params = server.last_request.url.params
    assert params["q"] == "chicken"
    assert params["tags"] == "Quick,Dinner"
    assert params["limit"] == "10"
    assert params["page"] == "2"
