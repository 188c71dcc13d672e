"""
Error taxonomy for the task lifecycle and ingestion pipeline.

Every error raised by the engine derives from LangcrowdError so handlers can
map it to a response in one place (see utils.error_response).
"""
from typing import Any, Dict, List, Optional


class LangcrowdError(Exception):
    """Base class for all engine errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SchemaError(LangcrowdError):
    """Content, payload or file headers failed validation. Never partially applied."""

    status_code = 400


class NotFound(LangcrowdError):
    """Referenced record does not exist or does not belong to the caller."""

    status_code = 404


class Conflict(LangcrowdError):
    """The current state of a task or contribution forbids the action."""

    status_code = 409

    def __init__(self, message: str, reasons: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        # DynamoDB CancellationReasons, in TransactItems order
        self.reasons = reasons or []


class InvalidTransition(LangcrowdError):
    """Requested status is not reachable from the current status."""

    status_code = 409


class StorageError(LangcrowdError):
    """Asset upload to blob storage failed."""

    status_code = 502
