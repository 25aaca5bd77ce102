"""Supabase REST access over httpx."""

from .client import SupabaseClient
from .factory import SupabaseClientFactory
from .query import QueryBuilder, QueryResult

__all__ = ["SupabaseClient", "SupabaseClientFactory", "QueryBuilder", "QueryResult"]
