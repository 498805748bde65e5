"""Registry API operations."""
