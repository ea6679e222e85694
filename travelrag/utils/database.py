"""Supabase database client"""
from typing import Optional

from supabase import AsyncClient, acreate_client

from travelrag.config import settings
from travelrag.utils.errors import ConfigurationError


class SupabaseClient:
    """Singleton async Supabase client wrapper"""
    _instance: Optional[AsyncClient] = None

    @classmethod
    async def get_client(cls) -> AsyncClient:
        """Get or create Supabase client instance"""
        if cls._instance is None:
            if not settings.supabase_url or not settings.supabase_key:
                raise ConfigurationError(
                    "Supabase is not configured. Set SUPABASE_URL and SUPABASE_KEY in environment."
                )
            cls._instance = await acreate_client(
                supabase_url=settings.supabase_url,
                supabase_key=settings.supabase_key
            )
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the cached client (tests, key rotation)"""
        cls._instance = None
