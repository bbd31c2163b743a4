"""
Shared API Error Mapping
========================

Translates application exceptions into HTTP errors for the routers.
"""

from fastapi import HTTPException, status

from civic_sla.core import (
    ApplicationException,
    ConcurrentModificationException,
    DomainException,
    ExternalServiceException,
    ForbiddenActionException,
    RepositoryException,
    ResourceNotFoundException,
    SweepFailedException,
    ValidationException,
)

# Checked in order; subclasses before their bases.
_STATUS_BY_EXCEPTION = (
    (ResourceNotFoundException, status.HTTP_404_NOT_FOUND),
    (ValidationException, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ForbiddenActionException, status.HTTP_403_FORBIDDEN),
    (ConcurrentModificationException, status.HTTP_409_CONFLICT),
    (DomainException, status.HTTP_409_CONFLICT),
    (SweepFailedException, status.HTTP_503_SERVICE_UNAVAILABLE),
    (RepositoryException, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ExternalServiceException, status.HTTP_502_BAD_GATEWAY),
)


def status_code_for(exc: ApplicationException) -> int:
    for exc_type, code in _STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(exc: ApplicationException) -> HTTPException:
    """HTTPException carrying the message and details of ``exc``."""
    return HTTPException(
        status_code=status_code_for(exc),
        detail={"message": exc.message, **exc.details}
    )
