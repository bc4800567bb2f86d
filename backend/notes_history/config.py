from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./notes.db"
    database_echo: bool = False

    # Revision history
    revision_service_enabled: bool = True
    revision_ttl_days: int = 90
    revision_collect_interval_seconds: int = 600
    revision_collect_batch_size: int = 100
    # Updates stamped this long before a collection run may still be uncommitted
    revision_collect_margin_seconds: int = 300

    cors_origins: str = "http://localhost,http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def revision_ttl_ms(self) -> int:
        return self.revision_ttl_days * 24 * 60 * 60 * 1000


settings = Settings()
