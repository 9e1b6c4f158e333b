"""Exception hierarchy."""


class SalesBotError(Exception):
    """Base class for all sales bot errors."""


class TransientTransportError(SalesBotError):
    """Session absent, identity not yet confirmed, or connection not open."""


class CatalogLookupError(SalesBotError):
    """A catalog node or parent link could not be resolved."""


class PersistenceError(SalesBotError):
    """An order could not be created or updated in the store."""


class NotificationError(SalesBotError):
    """An external alert could not be delivered."""


class SessionFatalError(SalesBotError):
    """The session cannot be recovered; the process must be restarted."""
