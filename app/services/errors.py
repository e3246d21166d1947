"""Gift card error taxonomy.

Validation errors are shown to the user as-is. StorageConflict is retried
inside the ledger before it escapes; StorageFailure and GenerationExhausted
are never retried silently.
"""
from __future__ import annotations


class GiftCardError(Exception):
    code = "gift_card_error"
    default_message = "Gift card operation failed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidValue(GiftCardError):
    code = "invalid_value"
    default_message = "Invalid value."


class DuplicateCode(GiftCardError):
    code = "duplicate_code"
    default_message = "Gift card code already exists."


class GenerationExhausted(GiftCardError):
    code = "generation_exhausted"
    default_message = "Could not generate a unique gift card code."


class NotFound(GiftCardError):
    code = "not_found"
    default_message = "Gift card not found."


class TenantMismatch(GiftCardError):
    # authorization failure: surfaced exactly like NotFound
    code = "not_found"
    default_message = "Gift card not found."


class CardVoided(GiftCardError):
    code = "card_voided"
    default_message = "This gift card has been voided."


class CardExpired(GiftCardError):
    code = "card_expired"
    default_message = "This gift card has expired."


class ZeroBalance(GiftCardError):
    code = "zero_balance"
    default_message = "This gift card has no remaining balance."


class InsufficientBalance(GiftCardError):
    code = "insufficient_balance"
    default_message = "Insufficient gift card balance."


class GiftCardsDisabled(GiftCardError):
    code = "gift_cards_disabled"
    default_message = "Gift cards are not enabled for this business."


class StorageConflict(GiftCardError):
    code = "storage_conflict"
    default_message = "The gift card is busy, please retry."


class StorageFailure(GiftCardError):
    code = "storage_failure"
    default_message = "Gift card storage is unavailable."
