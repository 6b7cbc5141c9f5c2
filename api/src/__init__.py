"""Comment service API."""
