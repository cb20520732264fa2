# recipehub/store_factory.py
from functools import lru_cache

from app.settings import settings
from recipehub.db_rest import SupabaseREST
from recipehub.store_rest import RecipeStore


@lru_cache(maxsize=1)
def get_store() -> RecipeStore:
    """Process-wide store; also the FastAPI dependency routes ask for."""
    return RecipeStore(SupabaseREST(retries=settings.SUPABASE_RETRIES))
