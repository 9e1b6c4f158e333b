"""Storage module."""

from .storage import ICatalog, ICurrencyProvider, IOrderStore, IStorage, Storage

__all__ = ["ICatalog", "ICurrencyProvider", "IOrderStore", "IStorage", "Storage"]
