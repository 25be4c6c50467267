"""Application layer: ports and DTOs consumed by the services."""
