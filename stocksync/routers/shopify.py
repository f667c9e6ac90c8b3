"""Routes receiving Shopify webhook deliveries."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from stocksync.config import Settings, get_settings
from stocksync.db import get_db
from stocksync.services import intake

router = APIRouter(prefix="/webhooks/shopify", tags=["shopify"])


@router.post("/orders", status_code=status.HTTP_200_OK)
async def shopify_orders_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict[str, bool]:
    return await intake.handle_shopify_webhook(request, db, settings)


__all__ = ["router"]
