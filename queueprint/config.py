"""Configuration management for the QueuePrint agent."""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "queueprint"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "settings.json"

# Label used by `queueprint test-print` when no URL is given
DEFAULT_TEST_LABEL_URL = "https://rollo-main.b-cdn.net/wp-content/uploads/2017/01/Labels-Sample.pdf"

# settings.json key -> (attribute, environment variable)
_SETTINGS_KEYS = {
    "AGENT_ID": ("agent_id", "AGENT_ID"),
    "PRINTER_NAME": ("printer_name", "PRINTER_NAME"),
    "SUPABASE_URL": ("supabase_url", "SUPABASE_URL"),
    "SUPABASE_SERVICE_ROLE_KEY": ("supabase_key", "SUPABASE_SERVICE_ROLE_KEY"),
    "DATABASE_URL": ("database_url", "DATABASE_URL"),
}


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AgentConfig:
    """Configuration for the QueuePrint agent.

    The core reads these values once at startup and treats them as opaque
    strings; it never validates or rewrites them on its own.

    Identity and store settings (saved to settings.json):
        agent_id: Base agent identifier; a persisted random suffix is
            appended to form the claim marker.
        printer_name: Default printer for jobs without an override.
        supabase_url: Supabase project URL (REST + realtime backend).
        supabase_key: Service role key for the Supabase project.
        database_url: SQLAlchemy URL (SQL backend, used when no Supabase
            URL is set).

    Operational settings:
        jobs_table: Name of the shared job table.
        poll_interval: Seconds between periodic queue checks.
        silent: Print without the interactive preview surface.
        max_retries: Failed attempts per job before automatic retry stops.
        retry_delay: Seconds between automatic retries.
        render_timeout: Seconds to wait for the preview to finish rendering.
        test_label_url: Document printed by `queueprint test-print`.
        debug: Enable debug logging.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """

    agent_id: str = ""
    printer_name: str | None = None
    supabase_url: str = ""
    supabase_key: str = ""
    database_url: str = ""
    jobs_table: str = "print_jobs"
    poll_interval: int = 30
    silent: bool = True
    max_retries: int = 3
    retry_delay: float = 5.0
    render_timeout: float = 30.0
    test_label_url: str = DEFAULT_TEST_LABEL_URL
    debug: bool = False
    log_level: str = "INFO"
    config_path: Path | None = None

    @property
    def backend(self) -> str:
        """Name of the job store backend implied by the settings.

        Returns:
            str: 'supabase', 'sql' or '' when no store is configured.
        """
        if self.supabase_url:
            return "supabase"
        if self.database_url:
            return "sql"
        return ""

    @property
    def unique_id_path(self) -> Path:
        """Path of the persisted agent id suffix (beside settings.json)."""
        base = self.config_path or DEFAULT_CONFIG_FILE
        return base.parent / "unique-agent-id"

    def is_configured(self) -> bool:
        """Check if the agent has everything it needs to claim jobs.

        Returns:
            bool: True if agent id, printer and a store are set.
        """
        if not (self.agent_id and self.printer_name):
            return False
        if self.backend == "supabase":
            return bool(self.supabase_key)
        return self.backend == "sql"

    def save(self, config_path: Path | None = None) -> None:
        """Save identity and store settings to file.

        Args:
            config_path: Path to config file (default: ~/.config/queueprint/settings.json).
        """
        path = config_path or self.config_path or DEFAULT_CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {key: getattr(self, attr) or "" for key, (attr, _env) in _SETTINGS_KEYS.items()}
        data.update(
            {
                "POLL_INTERVAL": self.poll_interval,
                "SILENT": self.silent,
                "DEBUG": "true" if self.debug else "false",
            }
        )

        with open(path, "w") as f:
            json.dump(data, f, indent=2)

        # Secure the settings file (contains the service role key)
        os.chmod(path, 0o600)

    @classmethod
    def load(cls, config_path: Path | None = None, environ: dict | None = None) -> "AgentConfig":
        """Load configuration from settings.json, then overlay environment variables.

        Args:
            config_path: Path to settings file.
            environ: Environment mapping (default: os.environ).

        Returns:
            AgentConfig: Loaded configuration or defaults.
        """
        path = config_path or DEFAULT_CONFIG_FILE
        env = os.environ if environ is None else environ

        data = {}
        if path.exists():
            try:
                with open(path) as f:
                    data = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Error loading settings from {path}: {e}")
                data = {}

        config = cls(config_path=path)
        for key, (attr, env_name) in _SETTINGS_KEYS.items():
            value = data.get(key) or env.get(env_name) or ""
            if attr == "printer_name":
                value = value or None
            setattr(config, attr, value)

        if "POLL_INTERVAL" in data:
            config.poll_interval = int(data["POLL_INTERVAL"])
        if "SILENT" in data:
            config.silent = _as_bool(data["SILENT"])
        if "TEST_LABEL_URL" in data:
            config.test_label_url = data["TEST_LABEL_URL"]
        config.debug = _as_bool(data.get("DEBUG") or env.get("DEBUG", "false"))
        if config.debug:
            config.log_level = "DEBUG"

        return config


def get_config(config_path: Path | None = None) -> AgentConfig:
    """Get the current configuration.

    Args:
        config_path: Optional custom config path.

    Returns:
        AgentConfig: Current configuration.
    """
    return AgentConfig.load(config_path)
