from supabase import ClientOptions
from supabase.client import create_client, Client
from functools import lru_cache
import logging

from app.core.config import settings
from collections.abc import Sequence
from typing import Protocol, Callable, cast

logger = logging.getLogger(__name__)


# Lightweight protocols to type Supabase responses and table query builders we use.
class APIResponseProto(Protocol):
    @property
    def data(self) -> list[dict[str, object]] | None: ...

class TableQueryProto(Protocol):
    def select(self, columns: str) -> "TableQueryProto": ...
    def eq(self, column: str, value: object) -> "TableQueryProto": ...
    def in_(self, column: str, values: Sequence[object]) -> "TableQueryProto": ...
    def order(self, column: str, desc: bool = False) -> "TableQueryProto": ...
    def limit(self, n: int) -> "TableQueryProto": ...
    def delete(self) -> "TableQueryProto": ...
    def execute(self) -> APIResponseProto: ...


@lru_cache()
def get_supabase_service_client() -> Client:
    """
    Create and return a Supabase client using the Service Role key.
    The reminder engine reads every user's rules, activities and device tokens,
    so it must bypass RLS. Every PostgREST call is bounded by STORE_TIMEOUT_SECONDS
    so a stuck query cannot hold a tick forever.
    """
    url = settings.SUPABASE_URL
    service_key = settings.supabase_service_key

    if not url:
        raise ValueError("SUPABASE_URL is not configured")
    if not service_key:
        raise ValueError("SUPABASE_SERVICE_ROLE_KEY or SUPABASE_KEY is not configured")

    try:
        client = create_client(
            url,
            service_key,
            options=ClientOptions(postgrest_client_timeout=settings.STORE_TIMEOUT_SECONDS),
        )
        logger.info("Supabase service client created", extra={"supabase_url": url})
        return client
    except Exception as e:
        logger.error(f"Error creating Supabase service client: {e}")
        raise


def table(client: Client, name: str) -> TableQueryProto:
    """Typed table builder to avoid unknown member types on the client."""
    table_fn = cast(Callable[[str], object], getattr(client, "table"))
    return cast(TableQueryProto, table_fn(name))
