"""Activity telemetry for the dashboard.

One :class:`ActivityRecord` is emitted per agent run.  When ``DASHBOARD_URL``
is configured the record is POSTed to ``<DASHBOARD_URL>/api/activity``;
delivery problems are logged and swallowed.  The record is always written to
the log as well.
"""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
from pydantic import BaseModel, Field

from stagehand.core.logging import get_logger

logger = get_logger("core.telemetry")


class ActivityRecord(BaseModel):
    agent: str
    action: str
    work_item_id: int | None = None
    pr_id: int | None = None
    model_used: str | None = None
    tokens_used: int | None = None
    success: bool = True
    details: dict | None = None
    error: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ActivityLogger:
    """Sends activity records to the dashboard, if one is configured."""

    def __init__(self, dashboard_url: str = "", api_key: str = "", timeout: float = 10.0) -> None:
        self.dashboard_url = (dashboard_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def log(self, record: ActivityRecord) -> None:
        payload = record.model_dump(mode="json")

        if self.dashboard_url:
            try:
                response = httpx.post(
                    f"{self.dashboard_url}/api/activity",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    timeout=self.timeout,
                )
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.error("Failed to log to dashboard: %s", exc)

        logger.info("[%s] %s: %s", record.agent, record.action, payload)
