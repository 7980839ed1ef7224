"""HTTP middleware for the Dream Log service."""
