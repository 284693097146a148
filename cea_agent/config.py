"""
Centralized configuration with environment variable overrides.

Deployment profile, model settings, conversation limits, upstream endpoints
and store connections are all configurable here. Nothing is hardcoded in
agent, tool or store logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEPLOYMENTS = ("cea", "waterhub")


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class ServiceConfig:
    """Organisation and deployment settings."""

    name: str = os.getenv("SERVICE_NAME", "CEA Queretaro")
    deployment: str = os.getenv("DEPLOYMENT", "cea")
    timezone: str = os.getenv("BUSINESS_TIMEZONE", "America/Mexico_City")
    default_channel: str = os.getenv("DEFAULT_CHANNEL", "whatsapp")
    support_line: str = os.getenv("SUPPORT_LINE", "442-238-8200")
    human_response_hours: int = _safe_int("HUMAN_RESPONSE_HOURS", "24")


@dataclass(frozen=True)
class ModelConfig:
    """LLM settings for the classifier and the specialist personas."""

    classifier_model: str = os.getenv("CLASSIFIER_MODEL", "gpt-4.1-mini")
    specialist_model: str = os.getenv("SPECIALIST_MODEL", "gpt-4.1")
    info_model: str = os.getenv("INFO_MODEL", "gpt-4.1-mini")
    classifier_temperature: float = _safe_float("CLASSIFIER_TEMPERATURE", "0.3")
    specialist_temperature: float = _safe_float("SPECIALIST_TEMPERATURE", "0.5")
    info_temperature: float = _safe_float("INFO_TEMPERATURE", "0.7")
    classifier_max_tokens: int = _safe_int("CLASSIFIER_MAX_TOKENS", "256")
    specialist_max_tokens: int = _safe_int("SPECIALIST_MAX_TOKENS", "1024")
    info_max_tokens: int = _safe_int("INFO_MAX_TOKENS", "512")
    request_timeout_sec: float = _safe_float("MODEL_TIMEOUT", "45.0")
    max_tool_rounds: int = _safe_int("MAX_TOOL_ROUNDS", "6")


@dataclass(frozen=True)
class ConversationConfig:
    """Conversation memory limits."""

    ttl_seconds: int = _safe_int("CONVERSATION_TTL", "3600")
    sweep_interval_seconds: int = _safe_int("CONVERSATION_SWEEP_INTERVAL", "300")
    max_history_messages: int = _safe_int("MAX_HISTORY_MESSAGES", "20")
    max_message_length: int = _safe_int("MAX_MESSAGE_LENGTH", "10000")


@dataclass(frozen=True)
class UpstreamConfig:
    """External domain APIs and their retry policy."""

    cea_base_url: str = os.getenv(
        "CEA_API_URL", "https://aquacis-cf-int.ceaqueretaro.gob.mx/Comercial/services"
    )
    cea_explotacion: str = os.getenv("CEA_EXPLOTACION", "12")
    cea_username: str = os.getenv("CEA_WS_USERNAME", "WSGESTIONDEUDA")
    cea_password: str = os.getenv("CEA_WS_PASSWORD", "")
    proxy_url: str = os.getenv("CEA_PROXY_URL", "")
    waterhub_base_url: str = os.getenv("AQUAHUB_API_URL", "http://localhost:8000")
    timeout_sec: float = _safe_float("UPSTREAM_TIMEOUT", "30.0")
    max_attempts: int = _safe_int("UPSTREAM_MAX_ATTEMPTS", "3")
    backoff_sec: float = _safe_float("UPSTREAM_BACKOFF", "1.0")
    max_debt_items: int = _safe_int("MAX_DEBT_ITEMS", "10")
    consumption_window: int = _safe_int("CONSUMPTION_WINDOW", "12")


@dataclass(frozen=True)
class StoreConfig:
    """Persistent stores for tickets, customers and incident reports."""

    ticket_database_url: str = os.getenv("TICKETS_DATABASE_URL", "")
    incident_database_url: str = os.getenv(
        "DATABASE_URL", os.getenv("SUPABASE_DB_URL", "")
    )
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_ANON_KEY", "")
    ticket_account_id: int = _safe_int("TICKET_ACCOUNT_ID", "2")
    folio_max_attempts: int = _safe_int("FOLIO_MAX_ATTEMPTS", "5")
    command_timeout_sec: float = _safe_float("STORE_COMMAND_TIMEOUT", "10.0")


@dataclass(frozen=True)
class EnrichmentConfig:
    """Side-channel enrichers for location and audio messages."""

    nominatim_url: str = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org")
    user_agent: str = os.getenv("GEOCODER_USER_AGENT", "cea-agent/2.0")
    transcription_model: str = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")
    transcription_language: str = os.getenv("TRANSCRIPTION_LANGUAGE", "es")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    service: ServiceConfig = field(default_factory=ServiceConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.service.deployment not in DEPLOYMENTS:
        raise ValueError(
            f"DEPLOYMENT must be one of {DEPLOYMENTS}, got {config.service.deployment!r}"
        )
    for temp_name, temp_value in [
        ("CLASSIFIER_TEMPERATURE", config.model.classifier_temperature),
        ("SPECIALIST_TEMPERATURE", config.model.specialist_temperature),
        ("INFO_TEMPERATURE", config.model.info_temperature),
    ]:
        if not 0.0 <= temp_value <= 2.0:
            raise ValueError(f"{temp_name} must be between 0.0 and 2.0, got {temp_value}")
    if config.model.request_timeout_sec <= 0:
        raise ValueError(
            f"MODEL_TIMEOUT must be > 0, got {config.model.request_timeout_sec}"
        )
    if config.model.max_tool_rounds < 1:
        raise ValueError(
            f"MAX_TOOL_ROUNDS must be >= 1, got {config.model.max_tool_rounds}"
        )
    if config.conversation.ttl_seconds < 1:
        raise ValueError(
            f"CONVERSATION_TTL must be >= 1, got {config.conversation.ttl_seconds}"
        )
    if config.conversation.sweep_interval_seconds < 1:
        raise ValueError(
            "CONVERSATION_SWEEP_INTERVAL must be >= 1, "
            f"got {config.conversation.sweep_interval_seconds}"
        )
    if config.conversation.max_history_messages < 2:
        raise ValueError(
            "MAX_HISTORY_MESSAGES must be >= 2, "
            f"got {config.conversation.max_history_messages}"
        )
    if config.upstream.timeout_sec <= 0:
        raise ValueError(f"UPSTREAM_TIMEOUT must be > 0, got {config.upstream.timeout_sec}")
    if config.upstream.max_attempts < 1:
        raise ValueError(
            f"UPSTREAM_MAX_ATTEMPTS must be >= 1, got {config.upstream.max_attempts}"
        )
    if config.upstream.backoff_sec < 0:
        raise ValueError(f"UPSTREAM_BACKOFF must be >= 0, got {config.upstream.backoff_sec}")
    if config.store.folio_max_attempts < 1:
        raise ValueError(
            f"FOLIO_MAX_ATTEMPTS must be >= 1, got {config.store.folio_max_attempts}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    from cea_agent.logging_context import configure_logging

    config = AppConfig()
    _validate_config(config)
    configure_logging(config.log_level)
    logger.info(
        "Configuration loaded for '%s' (deployment: %s)",
        config.service.name,
        config.service.deployment,
    )
    return config


# Singleton instance
settings = load_config()
