"""
Maps engine exceptions onto HTTP errors for the routers.

    BackupNotFoundError  → 404
    BackupIntegrityError → 409
    ConfigError          → 400
    other RemediationError → 500
"""
from fastapi import HTTPException

from remediator.core.exceptions import (
    BackupIntegrityError,
    BackupNotFoundError,
    ConfigError,
    RemediationError,
)

_STATUS_CODES: list[tuple[type, int]] = [
    (BackupNotFoundError, 404),
    (BackupIntegrityError, 409),
    (ConfigError, 400),
]


def to_http_exception(error: RemediationError) -> HTTPException:
    for exc_type, status_code in _STATUS_CODES:
        if isinstance(error, exc_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
