"""Configuration management for the briefing engine.

This module provides centralized configuration for all pipeline components.
All settings are loaded from environment variables with sensible defaults.

Environment Variables:
    Required:
        GEMINI_API_KEY: Google Gemini API key for the extraction/synthesis agents

    Models (PydanticAI format - provider:model):
        EXTRACTOR_MODEL: Fast model for per-email insight extraction (map)
        SYNTHESIZER_MODEL: Larger model for briefing synthesis (reduce)

    Storage:
        DB_PATH: SQLite database file path (emails + briefings)
        STORE_TIMEOUT_SECONDS: Busy timeout for store operations

    Pipeline Behavior:
        FALLBACK_WINDOW_HOURS: Lookback when no prior briefing exists (default: 24)
        MAX_EMAILS: Maximum emails processed per run (default: 500)
        MAP_BATCH_SIZE: Concurrent extraction calls per batch (default: 10)
        MAX_CONTENT_CHARS: Email text sent to the extractor (default: 15000)
        EXTRACT_TIMEOUT_SECONDS: Timeout for one extraction call
        SYNTHESIZE_TIMEOUT_SECONDS: Timeout for the synthesis call
        DROP_UNDERSOURCED_CLUSTERS: Drop clusters citing fewer than 2 emails
        RUN_LEASE_SECONDS: Lifetime of the single-flight run lease

    Delivery:
        REPORTS_DIR: Directory for rendered markdown briefings
        NOTIFICATION_WEBHOOK_URL: HTTP endpoint for briefing alerts

    Optional Features:
        ENABLE_LOGFIRE: Enable Logfire/OpenTelemetry tracing

    Logging:
        LOG_LEVEL: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_BACKUP_COUNT: Number of rotated log files to keep
        LOG_MAX_BYTES: Max log file size in bytes (0 = time-based rotation)
        LOG_FORMAT: Log format ('text' or 'json' for structured logging)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env(key: str, default: str = "") -> str:
    """Get string environment variable with optional default."""
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as integer
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer value for {key}: '{val}'")


def _env_float(key: str, default: float) -> float:
    """Get float environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as float
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"Invalid float value for {key}: '{val}'")


def _env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable with default.

    Recognizes truthy values: '1', 'true', 'yes', 'on'
    Recognizes falsy values: '0', 'false', 'no', 'off'
    """
    val = os.environ.get(key, "").lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


DEFAULT_EXTRACTOR_MODEL = "google-gla:gemini-2.0-flash"
DEFAULT_SYNTHESIZER_MODEL = "google-gla:gemini-2.5-pro"


@dataclass
class Config:
    """Application configuration loaded from environment variables.

    Use Config.load() to create an instance with values from the environment.
    Per-run overrides (window, batch size) are passed to the pipeline as
    BriefingOptions instead of mutating this object.

    Example:
        >>> config = Config.load()
        >>> if error := config.validate():
        ...     print(f"Config error: {error}")
    """

    # === Required ===
    gemini_api_key: str = ""  # GEMINI_API_KEY - Google AI API key

    # === AI Models ===
    extractor_model: str = DEFAULT_EXTRACTOR_MODEL  # Map phase (fast)
    synthesizer_model: str = DEFAULT_SYNTHESIZER_MODEL  # Reduce phase (editor-in-chief)

    # === Storage ===
    db_path: Path = field(default_factory=lambda: Path("briefings.db"))  # DB_PATH
    store_timeout_seconds: float = 30.0  # STORE_TIMEOUT_SECONDS

    # === Pipeline Behavior ===
    fallback_window_hours: int = 24  # FALLBACK_WINDOW_HOURS - No prior briefing
    max_emails: int = 500  # MAX_EMAILS - Cost cap per run
    map_batch_size: int = 10  # MAP_BATCH_SIZE - In-flight extraction calls
    max_content_chars: int = 15000  # MAX_CONTENT_CHARS - Extractor prompt cap
    extract_timeout_seconds: float = 60.0  # EXTRACT_TIMEOUT_SECONDS
    synthesize_timeout_seconds: float = 300.0  # SYNTHESIZE_TIMEOUT_SECONDS
    drop_undersourced_clusters: bool = False  # DROP_UNDERSOURCED_CLUSTERS
    run_lease_seconds: int = 1800  # RUN_LEASE_SECONDS - Single-flight lease TTL

    # === Delivery ===
    reports_dir: Path = field(default_factory=lambda: Path("reports"))  # REPORTS_DIR
    webhook_url: str = ""  # NOTIFICATION_WEBHOOK_URL - POST endpoint for briefings

    # === Logging Configuration ===
    log_dir: Path = field(default_factory=lambda: Path("log"))  # LOG_DIR
    log_level: str = "INFO"  # LOG_LEVEL - DEBUG, INFO, WARNING, ERROR
    log_backup_count: int = 30  # LOG_BACKUP_COUNT - Number of rotated logs to keep
    log_max_bytes: int = 0  # LOG_MAX_BYTES - Max file size (0 = time-based rotation)
    log_format: str = "text"  # LOG_FORMAT - 'text' or 'json' for structured logging

    # === Optional: Observability ===
    # Requires: pip install logfire
    enable_logfire: bool = False  # ENABLE_LOGFIRE - Enable distributed tracing
    logfire_token: str = ""  # LOGFIRE_TOKEN - Authentication token

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            gemini_api_key=_env("GEMINI_API_KEY"),
            extractor_model=_env("EXTRACTOR_MODEL", DEFAULT_EXTRACTOR_MODEL),
            synthesizer_model=_env("SYNTHESIZER_MODEL", DEFAULT_SYNTHESIZER_MODEL),
            db_path=Path(_env("DB_PATH", "briefings.db")),
            store_timeout_seconds=_env_float("STORE_TIMEOUT_SECONDS", 30.0),
            fallback_window_hours=_env_int("FALLBACK_WINDOW_HOURS", 24),
            max_emails=_env_int("MAX_EMAILS", 500),
            map_batch_size=_env_int("MAP_BATCH_SIZE", 10),
            max_content_chars=_env_int("MAX_CONTENT_CHARS", 15000),
            extract_timeout_seconds=_env_float("EXTRACT_TIMEOUT_SECONDS", 60.0),
            synthesize_timeout_seconds=_env_float("SYNTHESIZE_TIMEOUT_SECONDS", 300.0),
            drop_undersourced_clusters=_env_bool("DROP_UNDERSOURCED_CLUSTERS", False),
            run_lease_seconds=_env_int("RUN_LEASE_SECONDS", 1800),
            reports_dir=Path(_env("REPORTS_DIR", "reports")),
            webhook_url=_env("NOTIFICATION_WEBHOOK_URL"),
            log_dir=Path(_env("LOG_DIR", "log")),
            enable_logfire=_env_bool("ENABLE_LOGFIRE", False),
            logfire_token=_env("LOGFIRE_TOKEN"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_backup_count=_env_int("LOG_BACKUP_COUNT", 30),
            log_max_bytes=_env_int("LOG_MAX_BYTES", 0),
            log_format=_env("LOG_FORMAT", "text").lower(),
        )

    def validate(self) -> str | None:
        """Validate configuration for required fields and valid values.

        Returns:
            Error message string if invalid, None if valid.
        """
        uses_remote = not all(
            m.startswith("openai:") and "@" in m
            for m in (self.extractor_model, self.synthesizer_model)
        )
        if uses_remote and not self.gemini_api_key:
            return "GEMINI_API_KEY environment variable is required"
        if self.fallback_window_hours <= 0:
            return "FALLBACK_WINDOW_HOURS must be positive"
        if self.max_emails <= 0:
            return "MAX_EMAILS must be positive"
        if self.map_batch_size <= 0:
            return "MAP_BATCH_SIZE must be positive"
        if self.max_content_chars <= 0:
            return "MAX_CONTENT_CHARS must be positive"
        if self.extract_timeout_seconds <= 0 or self.synthesize_timeout_seconds <= 0:
            return "Timeouts must be positive"
        if self.store_timeout_seconds <= 0:
            return "STORE_TIMEOUT_SECONDS must be positive"
        if self.run_lease_seconds <= 0:
            return "RUN_LEASE_SECONDS must be positive"
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return f"Invalid LOG_LEVEL '{self.log_level}' - must be DEBUG, INFO, WARNING, ERROR, or CRITICAL"
        if self.log_format not in ("text", "json"):
            return f"Invalid LOG_FORMAT '{self.log_format}' - must be 'text' or 'json'"
        if self.log_backup_count < 0:
            return "LOG_BACKUP_COUNT must be non-negative"
        if self.log_max_bytes < 0:
            return "LOG_MAX_BYTES must be non-negative"
        return None
