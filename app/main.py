from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# IMPORTANT:
# This imports ALL models so SQLAlchemy registers tables + FKs correctly
import app.models  # noqa: F401

from app.core.config import settings
from app.core.logging_config import configure_logging

# Routers
from app.routers.admin_gift_card_imports import router as admin_gift_card_imports_router
from app.routers.admin_gift_cards import router as admin_gift_cards_router
from app.routers.admin_gift_card_settings import router as admin_gift_card_settings_router
from app.routers.pos_gift_cards import router as pos_gift_cards_router
from app.routers.public_gift_cards import router as public_gift_cards_router
from app.routers.purchases import router as purchases_router

configure_logging(settings.LOG_LEVEL)

app = FastAPI(title="Gift Card Ledger")

# CORS for the admin / POS frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Admin
# import must be registered before /{gift_card_id} routes
app.include_router(admin_gift_card_imports_router)
app.include_router(admin_gift_cards_router)
app.include_router(admin_gift_card_settings_router)

# Point of sale
app.include_router(pos_gift_cards_router)

# Booking checkout
app.include_router(public_gift_cards_router)

# Payment collaborator
app.include_router(purchases_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
