"""Help Center HTTP API."""
