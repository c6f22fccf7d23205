"""Persistence adapters for engine entities."""

from marketplace_engine.store.marketplace import MarketplaceStore

__all__ = ["MarketplaceStore"]
