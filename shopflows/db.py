from supabase import Client, ClientOptions, create_client

from shopflows.config import settings


class SupabaseClient:
    _client: Client | None = None
    _service_client: Client | None = None

    @classmethod
    def _options(cls) -> ClientOptions:
        timeout = settings.backend_timeout_seconds
        return ClientOptions(
            postgrest_client_timeout=timeout,
            storage_client_timeout=int(timeout),
            function_client_timeout=int(timeout),
        )

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            cls._client = create_client(settings.supabase_url, settings.supabase_key, options=cls._options())
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        """Client with service_role key; bypasses RLS. Only for seeding scripts."""
        if cls._service_client is None and settings.supabase_service_role_key:
            cls._service_client = create_client(
                settings.supabase_url, settings.supabase_service_role_key, options=cls._options()
            )
        return cls._service_client or cls.get_client()

    @classmethod
    def reset_client(cls) -> None:
        cls._client = None
        cls._service_client = None


def get_supabase() -> Client:
    return SupabaseClient.get_client()
