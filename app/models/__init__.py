# Import all models here so SQLAlchemy registers them into Base.metadata.

from app.models.gift_card import GiftCard, GiftCardTransaction  # noqa: F401
from app.models.gift_card_settings import GiftCardSettings  # noqa: F401
