"""Seed a demo catalogue for local webhook testing."""
from __future__ import annotations

from dotenv import load_dotenv

load_dotenv()

from stocksync import models
from stocksync.config import get_settings
from stocksync.db import get_engine, get_sessionmaker


def main() -> None:
    settings = get_settings()
    print(f"Using database: {settings.database_url}")

    models.Base.metadata.create_all(bind=get_engine())
    session = get_sessionmaker()()

    try:
        mug = models.Product(name="Enamel mug", primary_sku="MUG-001", supplier_sku="SUP-MUG", barcodes=["5012345678900"])
        tote = models.Product(name="Canvas tote", primary_sku="TOTE-001", barcodes=[])
        session.add_all([mug, tote])
        session.flush()

        session.add_all(
            [
                models.ShopifyVariantMap(shopify_variant_id=40000000001, product_id=mug.id),
                models.InventoryLevel(product_id=mug.id, quantity_on_hand=25),
                models.InventoryLevel(product_id=tote.id, quantity_on_hand=10),
            ]
        )
        session.commit()
        print("Seed data inserted.")
    finally:
        session.close()


if __name__ == "__main__":
    main()
