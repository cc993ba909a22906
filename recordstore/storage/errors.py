from __future__ import annotations

from typing import Any, Dict, Optional


class RecordStoreError(Exception):
    """Base class for errors raised by the record stores.

    Each subclass carries a stable ``error_code`` so host applications can map
    store failures onto their own error envelopes:
    - invalid_argument
    - not_found
    - validation_error
    """

    error_code: str = "record_store_error"

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ArgumentError(RecordStoreError):
    """A constructor or operation argument is missing or malformed."""

    error_code = "invalid_argument"


class NotFoundError(RecordStoreError):
    """The requested record does not exist in the collection."""

    error_code = "not_found"


class ValidationError(RecordStoreError):
    """The record conflicts with stored state, e.g. a duplicate identifier."""

    error_code = "validation_error"


__all__ = ["RecordStoreError", "ArgumentError", "NotFoundError", "ValidationError"]
