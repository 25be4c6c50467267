"""Domain layer package.

The domain layer contains plain dataclass entities and value objects with
no dependency on persistence, caching or transport.
"""

__all__ = []
