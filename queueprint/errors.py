"""Error types raised by the claim-and-execute pipeline.

Losing a claim race or finding an empty queue is not an error and never
raises; those outcomes are reported as ``None`` by the store and as
``RunOutcome`` values by the runner.
"""


class QueuePrintError(Exception):
    """Base class for agent errors."""

    pass


class ConfigurationError(QueuePrintError):
    """Caller or configuration error (missing label URL, printer, store).

    Never retried; surfaced to whoever asked for the print.
    """

    pass


class DeliveryError(QueuePrintError):
    """Transient failure while fetching or printing an artifact.

    Retried by the job runner up to its ceiling.
    """

    pass


class RenderTimeoutError(DeliveryError):
    """The preview surface did not report a finished render in time."""

    pass


class StoreError(QueuePrintError):
    """The job store rejected a request or could not be reached."""

    pass
