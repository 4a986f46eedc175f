"""Durable agent identity used as the claim marker."""

import logging
import time
import uuid
from pathlib import Path

from queueprint.config import DEFAULT_CONFIG_DIR

logger = logging.getLogger(__name__)

# base_id -> suffix, used only when the suffix could not be persisted
_fallback_suffixes: dict[str, str] = {}


def resolve_unique_agent_id(base_id: str, id_path: Path | None = None) -> str:
    """Return the globally unique id this agent writes into ``claimed_by``.

    The first call generates a random suffix and stores it in ``id_path``;
    later calls, including after a restart, read it back. If the file cannot
    be read or written, a timestamp suffix is used for the rest of this
    process, which keeps startup going at the cost of a weaker uniqueness
    guarantee.

    Args:
        base_id: Configured agent id.
        id_path: File holding the persisted suffix
            (default: ~/.config/queueprint/unique-agent-id).

    Returns:
        str: ``"{base_id}-{suffix}"``.
    """
    id_path = id_path or DEFAULT_CONFIG_DIR / "unique-agent-id"
    try:
        if id_path.exists():
            suffix = id_path.read_text(encoding="utf-8").strip()
            if suffix:
                return f"{base_id}-{suffix}"

        suffix = str(uuid.uuid4())
        id_path.parent.mkdir(parents=True, exist_ok=True)
        id_path.write_text(suffix, encoding="utf-8")
        logger.info(f"Generated agent id suffix at {id_path}")
        return f"{base_id}-{suffix}"
    except OSError as e:
        if base_id not in _fallback_suffixes:
            logger.warning(f"Could not persist agent id ({e}); using timestamp suffix")
            _fallback_suffixes[base_id] = str(int(time.time() * 1000))
        return f"{base_id}-{_fallback_suffixes[base_id]}"
