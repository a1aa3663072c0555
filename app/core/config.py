from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"
    api_port: int = 8000

    log_level: str = "INFO"
    log_format: str = "console"

    realtime_reap_interval_seconds: float = Field(default=300.0, gt=0)
    realtime_inactivity_threshold_seconds: float = Field(default=1800.0, gt=0)
    realtime_outbound_queue_size: int = Field(default=256, ge=1)
    admin_broadcast_enabled: bool = False

    cors_allowed_origins_raw: str = "http://127.0.0.1:5173,http://localhost:5173"
    trusted_hosts_raw: str = "127.0.0.1,localhost,testserver"
    force_https: bool = False

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    @property
    def cors_allowed_origins(self) -> list[str]:
        return [
            origin.strip()
            for origin in self.cors_allowed_origins_raw.split(",")
            if origin.strip()
        ]

    @property
    def trusted_hosts(self) -> list[str]:
        return [
            host.strip() for host in self.trusted_hosts_raw.split(",") if host.strip()
        ]

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    def validate_security_settings(self) -> None:
        if not self.is_production:
            return

        if self.admin_broadcast_enabled:
            raise ValueError(
                "ADMIN_BROADCAST_ENABLED must be false in production; "
                "the broadcast endpoint is unauthenticated."
            )
        if not self.cors_allowed_origins:
            raise ValueError(
                "CORS_ALLOWED_ORIGINS_RAW must define explicit origins in production."
            )
        if "*" in self.cors_allowed_origins:
            raise ValueError("Wildcard CORS origin is not allowed in production.")
        if not self.trusted_hosts:
            raise ValueError(
                "TRUSTED_HOSTS_RAW must define explicit hosts in production."
            )
        if "*" in self.trusted_hosts:
            raise ValueError("Wildcard trusted host is not allowed in production.")


@lru_cache
def get_settings() -> Settings:
    return Settings()
