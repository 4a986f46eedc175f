"""Supabase (PostgREST) job store backend."""

import logging
from datetime import datetime, timezone

import requests
from pydantic import ValidationError

from queueprint.errors import StoreError
from queueprint.models import JobStatus, PrintJob
from queueprint.store.base import UNIQUE_VIOLATION

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RestJobStore:
    """Job store backed by a Supabase project's REST API.

    Filters are expressed as PostgREST query parameters, so the conditional
    claim is a single ``PATCH`` evaluated by Postgres.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str = "print_jobs",
        timeout: float = 10,
        session: requests.Session | None = None,
    ):
        """Initialize the REST store.

        Args:
            base_url: Supabase project URL.
            api_key: Service role key.
            table: Job table name.
            timeout: Request timeout in seconds.
            session: Optional requests session (for connection reuse).
        """
        self.base_url = base_url.rstrip("/")
        self.table = table
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    @property
    def _table_url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def _request(
        self,
        method: str,
        params: dict,
        json: dict | None = None,
        prefer: str | None = None,
    ) -> requests.Response:
        headers = {"Prefer": prefer} if prefer else None
        try:
            return self.session.request(
                method,
                self._table_url,
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StoreError(f"Job store request failed: {e}") from e

    @staticmethod
    def _error_code(response: requests.Response) -> str | None:
        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("code") if isinstance(body, dict) else None

    @staticmethod
    def _rows(response: requests.Response) -> list[dict]:
        """Decode a row list, raising StoreError for anything else."""
        try:
            rows = response.json()
        except ValueError as e:
            raise StoreError(f"Invalid job store response: {response.text[:200]}") from e
        if not isinstance(rows, list):
            raise StoreError(f"Unexpected job store response: {str(rows)[:200]}")
        return rows

    @staticmethod
    def _job(row: dict) -> PrintJob:
        try:
            return PrintJob.model_validate(row)
        except ValidationError as e:
            raise StoreError(f"Malformed print job row: {e}") from e

    @staticmethod
    def _raise_for_status(response: requests.Response, action: str) -> None:
        if response.status_code >= 400:
            raise StoreError(f"Error {action}: {response.status_code} {response.text[:200]}")

    def ping(self) -> None:
        response = self._request("GET", {"select": "id", "limit": "1"})
        self._raise_for_status(response, "querying print jobs")

    def fetch_oldest_pending(self) -> PrintJob | None:
        response = self._request(
            "GET",
            {
                "select": "*",
                "status": f"eq.{JobStatus.PENDING.value}",
                "claimed_by": "is.null",
                "order": "created_at.asc",
                "limit": "1",
            },
        )
        self._raise_for_status(response, "fetching print jobs")

        rows = self._rows(response)
        if not rows:
            return None
        return self._job(rows[0])

    def get_job(self, job_id: str) -> PrintJob | None:
        response = self._request("GET", {"select": "*", "id": f"eq.{job_id}", "limit": "1"})
        self._raise_for_status(response, "fetching print job")

        rows = self._rows(response)
        return self._job(rows[0]) if rows else None

    def claim(self, job_id: str, agent_id: str) -> PrintJob | None:
        response = self._request(
            "PATCH",
            {
                "id": f"eq.{job_id}",
                "status": f"eq.{JobStatus.PENDING.value}",
                "claimed_by": "is.null",
            },
            json={
                "status": JobStatus.PRINTING.value,
                "claimed_by": agent_id,
                "claimed_at": _now_iso(),
            },
            prefer="return=representation",
        )

        if response.status_code >= 400:
            if self._error_code(response) == UNIQUE_VIOLATION:
                logger.debug(f"Job {job_id} already claimed by another agent")
                return None
            self._raise_for_status(response, "claiming print job")

        rows = self._rows(response)
        if not rows:
            logger.debug(f"Job {job_id} not available for claiming")
            return None
        return self._job(rows[0])

    def mark_completed(self, job_id: str) -> None:
        response = self._request(
            "PATCH",
            {"id": f"eq.{job_id}"},
            json={"status": JobStatus.COMPLETED.value, "printed_at": _now_iso()},
        )
        self._raise_for_status(response, "updating print job status")

    def mark_status(self, job_id: str, status: JobStatus) -> None:
        response = self._request(
            "PATCH",
            {"id": f"eq.{job_id}"},
            json={"status": JobStatus(status).value},
        )
        self._raise_for_status(response, "updating print job status")
