# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Custom exception hierarchy for auditprov."""


class AuditProvError(Exception):
    """Base exception for all auditprov errors."""


class ConfigurationError(AuditProvError):
    """Invalid or missing configuration."""


class FeedError(AuditProvError):
    """The audit line feed could not be acquired or configured."""


class StorageError(AuditProvError):
    """Overflow store operation failed."""


class CheckpointError(AuditProvError):
    """Checkpoint save or restore failed."""


class EventError(AuditProvError):
    """An audit event could not be turned into provenance."""


class MissingFieldError(EventError):
    """A required attribute was absent from an audit event."""

    def __init__(self, field: str, event_id: str | None = None) -> None:
        self.field = field
        self.event_id = event_id
        super().__init__(f"Missing '{field}' in event {event_id or '<unknown>'}")


class MalformedFieldError(EventError):
    """An attribute was present but could not be interpreted."""

    def __init__(self, field: str, value: str, event_id: str | None = None) -> None:
        self.field = field
        self.value = value
        self.event_id = event_id
        super().__init__(
            f"Malformed '{field}'={value!r} in event {event_id or '<unknown>'}"
        )


class InconsistentStateError(EventError):
    """Reporter state does not support the fact an event describes."""
