from __future__ import annotations

import logging

from fastapi import HTTPException, status

from app.services.errors import (
    CardExpired,
    CardVoided,
    DuplicateCode,
    GenerationExhausted,
    GiftCardError,
    GiftCardsDisabled,
    InsufficientBalance,
    InvalidValue,
    NotFound,
    StorageConflict,
    StorageFailure,
    TenantMismatch,
    ZeroBalance,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[GiftCardError], int]] = [
    (InvalidValue, status.HTTP_400_BAD_REQUEST),
    (ZeroBalance, status.HTTP_400_BAD_REQUEST),
    (InsufficientBalance, status.HTTP_400_BAD_REQUEST),
    (CardExpired, status.HTTP_400_BAD_REQUEST),
    (CardVoided, status.HTTP_400_BAD_REQUEST),
    (GiftCardsDisabled, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (TenantMismatch, status.HTTP_404_NOT_FOUND),
    (DuplicateCode, status.HTTP_409_CONFLICT),
    (StorageConflict, status.HTTP_409_CONFLICT),
    (GenerationExhausted, status.HTTP_503_SERVICE_UNAVAILABLE),
    (StorageFailure, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def gift_card_http_error(err: GiftCardError) -> HTTPException:
    """Map a ledger error to the response the POS / admin UI shows."""
    if isinstance(err, (NotFound, TenantMismatch)):
        # same body for both: never confirm another tenant's card exists
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "not_found", "message": NotFound.default_message},
        )

    code = status.HTTP_400_BAD_REQUEST
    for cls, http_status in _STATUS_BY_ERROR:
        if isinstance(err, cls):
            code = http_status
            break

    if code >= 500:
        logger.error("gift card request failed: %s", err.code)

    return HTTPException(status_code=code, detail={"code": err.code, "message": err.message})
