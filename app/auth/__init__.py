"""Authentication components for the VinciUI API."""

from .supabase_jwt import bearer_scheme, get_current_principal, verify_supabase_token

__all__ = [
    "bearer_scheme",
    "get_current_principal",
    "verify_supabase_token",
]
