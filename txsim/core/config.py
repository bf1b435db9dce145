"""Core configuration for the txsim simulator."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TXSIM_",
        case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "txsim"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # ── HTTP API ─────────────────────────────────────────────────────────
    cors_allowed_origins: str = "http://localhost:3000"
    max_request_bytes: int = 10 * 1024 * 1024

    # ── Execution host budget ────────────────────────────────────────────
    host_cpu_insns_limit: int = 100_000_000
    host_mem_bytes_limit: int = 41_943_040
    host_cpu_insns_per_invocation: int = 50_000
    host_mem_bytes_per_invocation: int = 4_096

    # ── RPC ──────────────────────────────────────────────────────────────
    rpc_urls: str = ""  # comma-separated, primary first
    rpc_timeout_seconds: float = 30.0
    rpc_retries: int = 3
    rpc_retry_delay_seconds: float = 0.5
    rpc_circuit_breaker_threshold: int = 5
    rpc_circuit_breaker_timeout_seconds: float = 60.0
    rpc_api_key: str = ""

    @property
    def rpc_url_list(self) -> list[str]:
        return [u.strip() for u in self.rpc_urls.split(",") if u.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
