"""
Conversion des erreurs métier en HTTPException
"""

from fastapi import HTTPException

from services.errors import (
    CommandValidationError,
    InvalidStateError,
    NotFoundError,
    QualificationError,
    UnknownEnumError,
)


def to_http(error: QualificationError) -> HTTPException:
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))

    if isinstance(error, InvalidStateError):
        return HTTPException(
            status_code=409,
            detail={"error": str(error), "current_status": error.current_status}
        )

    if isinstance(error, CommandValidationError):
        return HTTPException(status_code=400, detail={"error": str(error), "field": error.field})

    if isinstance(error, UnknownEnumError):
        return HTTPException(status_code=400, detail=str(error))

    return HTTPException(status_code=500, detail=str(error))
