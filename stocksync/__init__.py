"""Shopify webhook queue and inventory reconciliation service."""
