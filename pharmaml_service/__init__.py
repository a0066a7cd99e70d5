"""PharmaML order transmission service."""
