"""Resolve storefront line items to internal product ids."""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from stocksync.models.inventory import Product, ShopifyVariantMap

logger = logging.getLogger(__name__)


def _normalize_code(value: object) -> str:
    return str(value).strip().lower() if value is not None else ""


class ProductResolver:
    """Variant id first, then SKU / supplier SKU / barcode.

    The code index is built on the first SKU fallback and kept for the
    lifetime of the resolver, which the worker scopes to one claimed batch.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self._variant_cache: dict[int, str | None] = {}
        self._code_index: dict[str, str] | None = None

    def resolve(self, variant_id: int | None, sku: str | None) -> str | None:
        """Return the internal product id, or ``None`` when unresolved."""

        if isinstance(variant_id, int) and not isinstance(variant_id, bool):
            product_id = self._by_variant(variant_id)
            if product_id:
                return product_id

        code = _normalize_code(sku)
        if not code:
            return None
        return self._index().get(code)

    def _by_variant(self, variant_id: int) -> str | None:
        if variant_id not in self._variant_cache:
            self._variant_cache[variant_id] = self.db.scalar(
                select(ShopifyVariantMap.product_id).where(
                    ShopifyVariantMap.shopify_variant_id == variant_id
                )
            )
        return self._variant_cache[variant_id]

    def _index(self) -> dict[str, str]:
        if self._code_index is None:
            self._code_index = build_code_index(self.db)
            logger.debug("Product code index built", extra={"codes": len(self._code_index)})
        return self._code_index


def build_code_index(db: Session) -> dict[str, str]:
    """Map every lower-cased SKU, supplier SKU and barcode to its product id.

    Products are visited in id order and the first product claiming a code
    keeps it.
    """

    index: dict[str, str] = {}
    rows = db.execute(
        select(Product.id, Product.primary_sku, Product.supplier_sku, Product.barcodes).order_by(Product.id)
    )
    for product_id, primary_sku, supplier_sku, barcodes in rows:
        codes = [primary_sku, supplier_sku]
        if isinstance(barcodes, list):
            codes.extend(barcodes)
        for code in codes:
            key = _normalize_code(code)
            if key:
                index.setdefault(key, product_id)
    return index


__all__ = ["ProductResolver", "build_code_index"]
