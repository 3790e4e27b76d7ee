"""Carrier store exceptions."""

from __future__ import annotations


class StoreError(Exception):
    """Base exception for carrier store failures."""


class StoreNotInitializedError(StoreError, RuntimeError):
    """Raised when the store is used before initialize() or after close()."""

    def __init__(self) -> None:
        super().__init__("Store not initialized. Call initialize() first.")
