"""Help Center: multi-tenant knowledge bases."""

__version__ = "0.1.0"
