# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Application configuration via environment variables and .env files."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AUDITPROV_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )

    # Input
    input_log: Path | None = None  # None means live capture
    arch: int | None = None  # 32 or 64; required for replay
    bridge_command: str = "spadeAuditBridge"
    sort_log: bool = False
    sort_command: str = ""
    queue_size: int = 10_000

    @field_validator("arch")
    @classmethod
    def _validate_arch(cls, v: int | None) -> int | None:
        if v is not None and v not in (32, 64):
            raise ValueError("arch must be 32 or 64")
        return v

    # Feature toggles
    file_io: bool = False
    net_io: bool = False
    units: bool = False
    simplify: bool = True
    procfs: bool = False
    net_socket_versioning: bool = False
    unix_sockets: bool = False
    wait_for_log: bool = False
    memory_syscalls: bool = True
    success_only: bool = True
    unversioned_path_prefixes: list[str] = ["/dev/"]

    @field_validator("unversioned_path_prefixes", mode="before")
    @classmethod
    def _parse_unversioned_path_prefixes(cls, v: object) -> list[str]:
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v if isinstance(v, list) else []

    # Shutdown
    drain_timeout: float = 30.0  # seconds allowed for wait_for_log
    feed_join_timeout: float = 1.0

    # Caches
    cache_dir: Path = Path("auditprov-cache")
    event_buffer_cache_size: int = 100_000
    event_buffer_db_name: str = "eventbuffer"
    event_buffer_false_positive_rate: float = 0.0001
    event_buffer_expected_elements: int = 1_000_000
    artifacts_cache_size: int = 100_000
    artifacts_db_name: str = "artifacts"
    artifacts_false_positive_rate: float = 0.0001
    artifacts_expected_elements: int = 1_000_000

    @field_validator("event_buffer_false_positive_rate", "artifacts_false_positive_rate")
    @classmethod
    def _validate_false_positive_rate(cls, v: float) -> float:
        if not 0.0 < v < 1.0:
            raise ValueError("false positive rate must be between 0 and 1 (exclusive)")
        return v

    @field_validator(
        "event_buffer_expected_elements",
        "artifacts_expected_elements",
        "event_buffer_cache_size",
        "artifacts_cache_size",
    )
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    # Checkpoint
    load_state: bool = False
    save_state: bool = False
    state_file: Path = Path("auditprov-state.ckpt")
    saved_event_buffer_dir: Path = Path("auditprov-saved/eventbuffer")
    saved_artifacts_dir: Path = Path("auditprov-saved/artifacts")

    # Output
    output_path: Path | None = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"


def get_settings() -> Settings:
    return Settings()
