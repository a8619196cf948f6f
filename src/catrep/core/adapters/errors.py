"""Translation of botocore errors into the replication error taxonomy."""

from __future__ import annotations

from botocore.exceptions import BotoCoreError, ClientError

from catrep.core.errors import (
    AlreadyExistsError,
    NotFoundError,
    ReplicationError,
    UnrecoverableError,
)

_NOT_FOUND_CODES = {"EntityNotFoundException", "NoSuchKey", "NoSuchBucket", "404"}
_ALREADY_EXISTS_CODES = {"AlreadyExistsException"}


def error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def translate(exc: ClientError | BotoCoreError, what: str) -> ReplicationError:
    """Map an SDK exception to a domain error describing `what` failed."""
    if isinstance(exc, ClientError):
        code = error_code(exc)
        if code in _NOT_FOUND_CODES:
            return NotFoundError(f"{what}: not found ({code}).")
        if code in _ALREADY_EXISTS_CODES:
            return AlreadyExistsError(f"{what}: already exists.")
        return UnrecoverableError(f"{what}: {code or 'error'}: {exc}")
    return UnrecoverableError(f"{what}: {exc}")
