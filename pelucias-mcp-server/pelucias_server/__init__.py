"""UP Pelúcias storefront server."""

__version__ = "0.1.0"
