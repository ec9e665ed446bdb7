# config.py

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """ Application settings read from ECOMMERCE_* environment variables or a .env file. """

    model_config = SettingsConfigDict(env_prefix="ECOMMERCE_", env_file=".env", case_sensitive=False)

    # SQLite database file, ":memory:" for a throwaway database
    database_file: str = "ecommerce.db"
    log_level: str = "INFO"
    # how many times a reservation re-reads stock after losing a concurrent update
    reserve_max_attempts: int = 5


@lru_cache
def get_settings() -> Settings:
    return Settings()
