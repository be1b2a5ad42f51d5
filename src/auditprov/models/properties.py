# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Version and epoch bookkeeping for a single artifact identity."""

from __future__ import annotations

from pydantic import BaseModel

UNINITIALIZED = -1


class ArtifactProperties(BaseModel):
    """Mutable per-identity counters.

    ``version`` distinguishes successive content states within an epoch and
    is ``-1`` until first used.  ``epoch`` advances lazily: a new epoch is
    only materialized the next time it is read after :meth:`mark_new_epoch`.
    """

    version: int = UNINITIALIZED
    epoch: int = UNINITIALIZED
    epoch_pending: bool = True
    creation_event_id: int = UNINITIALIZED

    @property
    def version_uninitialized(self) -> bool:
        return self.version == UNINITIALIZED

    def get_version(self, increment: bool) -> int:
        if increment or self.version == UNINITIALIZED:
            self.version += 1
        return self.version

    def get_epoch(self) -> int:
        if self.epoch_pending:
            self.epoch_pending = False
            self.epoch += 1
        return self.epoch

    def mark_new_epoch(self, event_id: str | int) -> None:
        self.creation_event_id = int(event_id)
        self.epoch_pending = True
        self.version = UNINITIALIZED
