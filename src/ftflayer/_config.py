"""Layer configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class LayerConfig:
    """Immutable layer configuration, fixed at construction."""

    provider_id: int = 1
    provider_name: str = "trace"
    process_id: int | None = None
    default_category: str = "default"
    eligibility_field: str = "ftf"
    category_field: str = "category"
    max_consecutive_failures: int = 64

    def __post_init__(self) -> None:
        if not 0 <= self.provider_id <= 0xFFFF_FFFF:
            msg = f"provider_id must fit in 32 bits, got {self.provider_id}"
            raise ValueError(msg)
        if self.max_consecutive_failures < 1:
            msg = "max_consecutive_failures must be at least 1"
            raise ValueError(msg)

    @property
    def resolved_process_id(self) -> int:
        """Explicit process id, or the current one when none was given."""
        if self.process_id is not None:
            return self.process_id
        return os.getpid()
