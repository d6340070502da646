from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Database Settings
    database_url: Optional[str] = None
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10
    db_command_timeout: float = 60

    # App Settings
    environment: str = "development"
    log_level: str = "INFO"

    # Blast Settings
    blast_default_batch_size: int = 100
    blast_max_batch_size: int = 10000

    # Pagination
    default_page_size: int = 25
    max_page_size: int = 100

    class Config:
        env_file = ".env"
        extra = "ignore"  # This line allows extra env vars without errors

settings = Settings()
