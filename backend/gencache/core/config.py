"""Application configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults for development.
"""

import json
from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_json_credentials(raw: str) -> dict[str, Any] | None:
    """Parse a raw service-account JSON string, returning None when unset."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"credentials contain invalid JSON: {e.msg}") from e
    return data if isinstance(data, dict) else None


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========== Ephemeral tier (Upstash Redis) ==========
    upstash_redis_rest_url: str = Field(default="", description="Upstash Redis REST URL")
    upstash_redis_rest_token: str = Field(default="", description="Upstash Redis REST Token")
    cache_enabled: bool = Field(default=True, description="Use the ephemeral tier when reachable")
    cache_key_prefix: str = Field(default="mandarin:", description="Prefix for every ephemeral key")
    ephemeral_timeout_seconds: float = Field(default=0.25, gt=0, le=5)
    ephemeral_probe_timeout_seconds: float = Field(default=2.0, gt=0, le=30)
    ephemeral_admin_timeout_seconds: float = Field(default=10.0, gt=0, le=120)  # KEYS/DEL on invalidation
    cache_ttl_tts: int = Field(default=604800, ge=60)  # 7 days
    cache_ttl_conversation: int = Field(default=3600, ge=60)  # 1 hour
    cache_ttl_turn_audio: int = Field(default=604800, ge=60)  # 7 days
    metrics_reset_interval_seconds: int = Field(default=86400, ge=0)

    # ========== Durable tier (object storage) ==========
    storage_backend: Literal["gcs", "local"] = "local"
    gcs_bucket_name: str = Field(default="", description="GCS bucket for artifacts")
    gcs_credentials_raw: str = Field(default="", description="Service-account JSON for GCS")
    local_storage_dir: str = Field(default="./artifacts")
    local_public_base_url: str = Field(default="http://localhost:8000/artifacts")
    store_timeout_seconds: float = Field(default=10.0, gt=0, le=120)

    # ========== Generation back ends ==========
    gemini_api_key: str = Field(default="", description="Google Gemini API Key")
    openai_api_key: str = Field(default="", description="OpenAI API Key")
    default_llm_provider: Literal["gemini", "openai"] = "gemini"
    default_llm_model: str = "gemini-2.0-flash-lite"
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=1000, ge=64, le=8192)
    tts_credentials_raw: str = Field(default="", description="Service-account JSON for Cloud TTS")
    tts_voice_default: str = "cmn-CN-Wavenet-B"
    tts_language_code: str = "cmn-CN"
    backend_timeout_seconds: float = Field(default=30.0, gt=0, le=300)

    # ========== Generator versions ==========
    tts_generator_version: str = "v1"
    conversation_generator_version: str = "v1"
    turn_audio_generator_version: str = "v1"

    # ========== CORS ==========
    cors_origins_str: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        alias="CORS_ORIGINS",
        description="Comma-separated CORS origins",
    )

    # ========== Application ==========
    app_name: str = "Mandarin Generation Cache"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(default=False)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @model_validator(mode="after")
    def _check_storage(self) -> "Settings":
        if self.storage_backend == "gcs" and not self.gcs_bucket_name:
            raise ValueError("gcs_bucket_name is required when storage_backend is 'gcs'")
        return self

    # ========== Computed Properties ==========
    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @computed_field
    @property
    def redis_available(self) -> bool:
        """Check if Redis credentials are configured."""
        return bool(self.upstash_redis_rest_url and self.upstash_redis_rest_token)

    @property
    def gcs_credentials(self) -> dict[str, Any] | None:
        """GCS service account, falling back to the TTS account like the old deployment."""
        return _parse_json_credentials(self.gcs_credentials_raw) or _parse_json_credentials(
            self.tts_credentials_raw
        )

    @property
    def tts_credentials(self) -> dict[str, Any] | None:
        return _parse_json_credentials(self.tts_credentials_raw)

    def ttl_for(self, namespace: str) -> int:
        """Ephemeral TTL for a cache namespace."""
        ttls = {
            "tts": self.cache_ttl_tts,
            "conv-text": self.cache_ttl_conversation,
            "conv-audio": self.cache_ttl_turn_audio,
        }
        try:
            return ttls[namespace]
        except KeyError:
            raise ValueError(f"Unknown cache namespace: {namespace}") from None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
