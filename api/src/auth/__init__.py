"""Bearer token validation for the comment API."""
