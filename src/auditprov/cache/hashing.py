# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Named key hashers that turn cache keys into overflow-store keys.

Hashers are looked up by name so a checkpoint can record which one a cache
used and a restart can pick the same one back up.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable
from typing import Any

from auditprov.models.identity import identity_adapter

KeyHasher = Callable[[Any], str]

EVENT_ID_HASHER = "identity"
ARTIFACT_HASHER = "artifact-sha256"


def _hash_event_id(key: Any) -> str:
    return str(key)


def _hash_artifact(key: Any) -> str:
    # Canonical JSON: field order is fixed by the model definitions.
    payload = identity_adapter.dump_json(key)
    return hashlib.sha256(payload).hexdigest()


_HASHERS: dict[str, KeyHasher] = {
    EVENT_ID_HASHER: _hash_event_id,
    ARTIFACT_HASHER: _hash_artifact,
}


def get_hasher(name: str) -> KeyHasher:
    try:
        return _HASHERS[name]
    except KeyError:
        raise ValueError(f"Unknown key hasher: {name}") from None
