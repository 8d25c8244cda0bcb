from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: str | None = None
    backend_timeout_seconds: float = 10.0

    # Kiosk terminals: a shared PIN unlocks the terminal for its shop.
    device_pin: str | None = None
    device_org_id: str | None = None
    device_login_mode: Literal["static", "rpc"] = "static"  # static | rpc

    session_storage_dir: str = ".shopflows"
    session_storage_key: str = "shopflows_session"

    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000"

    def get_cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
