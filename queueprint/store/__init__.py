"""Shared job store access.

Use get_job_store() to build the backend named by the configuration and
connect_with_retry() at startup to wait for it to become reachable.
"""

import logging
import time
from collections.abc import Callable

from queueprint.config import AgentConfig
from queueprint.errors import ConfigurationError, StoreError
from queueprint.store.base import JobStore

logger = logging.getLogger(__name__)

MAX_INITIALIZATION_RETRIES = 3
INITIALIZATION_RETRY_DELAY = 5.0  # seconds


def get_job_store(config: AgentConfig) -> JobStore:
    """Factory function that returns the job store backend for a configuration.

    Args:
        config: Agent configuration.

    Returns:
        JobStore: Supabase REST store or SQL store.

    Raises:
        ConfigurationError: If no store is configured.
    """
    if config.backend == "supabase":
        if not config.supabase_key:
            raise ConfigurationError("Supabase service role key is required")

        from queueprint.store.rest import RestJobStore

        return RestJobStore(config.supabase_url, config.supabase_key, table=config.jobs_table)

    if config.backend == "sql":
        from queueprint.store.sql import SqlJobStore

        return SqlJobStore.from_url(config.database_url)

    raise ConfigurationError("No job store configured (set SUPABASE_URL or DATABASE_URL)")


def connect_with_retry(
    config: AgentConfig,
    max_retries: int = MAX_INITIALIZATION_RETRIES,
    retry_delay: float = INITIALIZATION_RETRY_DELAY,
    factory: Callable[[AgentConfig], JobStore] = get_job_store,
    sleep: Callable[[float], None] = time.sleep,
) -> JobStore | None:
    """Build the job store and probe it until it answers.

    Args:
        config: Agent configuration.
        max_retries: Retries after the first failed probe.
        retry_delay: Fixed delay between probes in seconds.
        factory: Store factory.
        sleep: Sleep function.

    Returns:
        JobStore | None: A reachable store, or None when the configuration is
            unusable or every probe failed. Callers continue in degraded mode.
    """
    try:
        store = factory(config)
    except ConfigurationError as e:
        logger.error(f"Invalid job store settings: {e}")
        return None

    attempt = 0
    while True:
        try:
            store.ping()
            logger.info("Job store client initialized successfully")
            return store
        except StoreError as e:
            logger.error(f"Error initializing job store client: {e}")

        if attempt >= max_retries:
            logger.error("Giving up on job store initialization")
            return None

        attempt += 1
        logger.info(
            f"Retrying initialization in {retry_delay:g} seconds... "
            f"(Attempt {attempt}/{max_retries})"
        )
        sleep(retry_delay)


__all__ = [
    "JobStore",
    "connect_with_retry",
    "get_job_store",
]
