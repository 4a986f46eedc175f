"""Job store interface."""

from typing import Protocol, runtime_checkable

from queueprint.models import JobStatus, PrintJob

# Postgres SQLSTATE for unique_violation; reported by PostgREST as error code
UNIQUE_VIOLATION = "23505"


@runtime_checkable
class JobStore(Protocol):
    """Protocol for the shared print job table.

    Implementations must make ``claim`` a single conditional update at the
    store. Reading the row and then writing it from the client would let two
    agents win the same job.
    """

    def ping(self) -> None:
        """Check that the store is reachable.

        Raises:
            StoreError: If the store cannot be queried.
        """
        ...

    def fetch_oldest_pending(self) -> PrintJob | None:
        """Get the oldest pending, unclaimed job.

        Returns:
            PrintJob | None: Oldest job by creation time, or None if the
                queue is empty.

        Raises:
            StoreError: If the query fails.
        """
        ...

    def get_job(self, job_id: str) -> PrintJob | None:
        """Get a job by id.

        Args:
            job_id: Job id.

        Returns:
            PrintJob | None: Job if found.
        """
        ...

    def claim(self, job_id: str, agent_id: str) -> PrintJob | None:
        """Claim a job for an agent.

        Sets ``status=printing``, ``claimed_by`` and ``claimed_at`` only if
        the job is still pending and unclaimed.

        Args:
            job_id: Job id.
            agent_id: Unique agent id written to ``claimed_by``.

        Returns:
            PrintJob | None: The updated row, or None if another agent won
                the race (including a unique-violation response).

        Raises:
            StoreError: If the store fails for any other reason.
        """
        ...

    def mark_completed(self, job_id: str) -> None:
        """Mark a claimed job as completed and stamp ``printed_at``.

        Args:
            job_id: Job id.
        """
        ...

    def mark_status(self, job_id: str, status: JobStatus) -> None:
        """Set the status of a job the caller has claimed.

        Args:
            job_id: Job id.
            status: New status.
        """
        ...
