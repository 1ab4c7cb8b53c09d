"""Request parsing utilities."""
