"""Re-export persistence protocols from core for convenience."""

from __future__ import annotations

from supportflow.core.protocols import IDirectory, IRecordStore

__all__ = ["IDirectory", "IRecordStore"]
