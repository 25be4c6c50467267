"""Thin FastAPI surface over the security core."""
