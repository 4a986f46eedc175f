"""Job and command schemas shared by the store, runner and CLI."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

# order_id of ad-hoc documents that bypass the job table
TEST_PRINT_ORDER_ID = "TEST-PRINT"


class JobStatus(str, Enum):
    """Print job lifecycle state."""

    PENDING = "pending"  # Waiting for an agent to claim it
    PRINTING = "printing"  # Claimed by an agent
    COMPLETED = "completed"  # Successfully printed
    FAILED = "failed"  # Could not be printed


class PrintJob(BaseModel):
    """A row of the shared print job table."""

    id: str
    order_id: str | None = None
    label_url: str | None = None
    status: JobStatus = JobStatus.PENDING
    claimed_by: str | None = None
    claimed_at: datetime | None = None
    printed_at: datetime | None = None
    last_tried_at: datetime | None = None
    retries: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    # Per-job print overrides
    printer_name: str | None = None
    copies: int | None = None
    paper_size: str | None = None
    orientation: str | None = None

    model_config = {"from_attributes": True}


class PrintCommandSettings(BaseModel):
    """Per-command overrides."""

    printer_name: str | None = None
    label_url: str | None = None
    silent: bool | None = None


class PrintCommand(BaseModel):
    """Operator request to print a specific job or an ad-hoc document now."""

    order_id: str = Field(..., min_length=1)
    label_url: str | None = None
    printer_name: str | None = None
    settings: PrintCommandSettings | None = None

    @property
    def is_ad_hoc(self) -> bool:
        """True when the command does not refer to a queued job."""
        return self.order_id == TEST_PRINT_ORDER_ID

    def resolved_label_url(self) -> str | None:
        if self.settings and self.settings.label_url:
            return self.settings.label_url
        return self.label_url

    def resolved_printer_name(self) -> str | None:
        if self.settings and self.settings.printer_name:
            return self.settings.printer_name
        return self.printer_name

    def resolved_silent(self) -> bool | None:
        return self.settings.silent if self.settings else None


class PrintResponse(BaseModel):
    """Synchronous result of a print command."""

    success: bool
    message: str
    error: str | None = None
