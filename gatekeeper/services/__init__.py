"""Core security services."""
