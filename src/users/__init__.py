"""User records for the VinciUI API."""

from .store import InMemoryUserStore, PostgresUserStore, UserStore

__all__ = [
    "UserStore",
    "PostgresUserStore",
    "InMemoryUserStore",
]
