"""HTTP client for submitting imports and polling their progress."""

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from src.config import get_settings
from src.schemas.recipe import RecipeSearchResult
from src.schemas.recipe_import import ImportBatchResponse

logger = logging.getLogger(__name__)


class PollingTimeout(Exception):
    """The batch did not reach a terminal state within the allowed polls."""

    def __init__(self, batch_id: str, last_seen: ImportBatchResponse | None):
        self.batch_id = batch_id
        self.last_seen = last_seen
        super().__init__(f"Import batch {batch_id} still not finished")


class ImportClient:
    """Client for the import and search API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)
        self._sleep = sleep

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ImportClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def start_import(self, repository_url: str, created_by: str | None = None) -> str:
        """Submit a repository and return the new batch id."""
        response = self._client.post(
            "/api/v1/imports",
            json={"repository_url": repository_url, "created_by": created_by},
        )
        response.raise_for_status()
        return response.json()["batch_id"]

    def get_status(self, batch_id: str) -> ImportBatchResponse | None:
        """Read one status snapshot; None if the batch does not exist."""
        response = self._client.get(f"/api/v1/imports/{batch_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return ImportBatchResponse.model_validate(response.json())

    def wait_for_batch(
        self,
        batch_id: str,
        interval: float | None = None,
        max_polls: int = 900,
        should_stop: Callable[[], bool] | None = None,
        on_update: Callable[[ImportBatchResponse], None] | None = None,
    ) -> ImportBatchResponse | None:
        """Poll a batch at a fixed interval until it is completed or failed.

        Stops early, returning the last snapshot, when ``should_stop`` returns
        True. Stopping only ends the polling; the import keeps running.

        Raises:
            PollingTimeout: ``max_polls`` snapshots were read without a terminal status.
        """
        interval = interval if interval is not None else get_settings().status_poll_interval_seconds
        snapshot: ImportBatchResponse | None = None
        for poll in range(max_polls):
            if should_stop is not None and should_stop():
                logger.info(f"Stopped polling import batch {batch_id}")
                return snapshot
            snapshot = self.get_status(batch_id)
            if snapshot is None:
                return None
            if on_update is not None:
                on_update(snapshot)
            if snapshot.is_terminal:
                return snapshot
            if poll < max_polls - 1:
                self._sleep(interval)
        raise PollingTimeout(batch_id, snapshot)

    def search(
        self,
        term: str | None = None,
        tags: list[str] | None = None,
        limit: int | None = None,
        page: int = 0,
    ) -> list[RecipeSearchResult]:
        params: dict[str, Any] = {"page": page}
        if term:
            params["q"] = term
        if tags:
            params["tags"] = ",".join(tags)
        if limit is not None:
            params["limit"] = limit
        response = self._client.get("/api/v1/recipes/search", params=params)
        response.raise_for_status()
        return [RecipeSearchResult.model_validate(item) for item in response.json()]
