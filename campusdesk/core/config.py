# campusdesk/core/config.py
"""Application configuration using Pydantic."""
from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    database_url: str
    jwt_secret_key: str
    jwt_algorithm: str = 'HS256'
    jwt_audience: str = 'authenticated'

    # External identity provider (admin API used to create login identities)
    identity_provider_url: Optional[str] = None
    identity_service_key: Optional[str] = None
    identity_timeout_seconds: float = 10.0

    app_version: str = '1.0.0'
    environment: str = 'development'
    log_level: str = 'info'
    allowed_origins: List[str] = ['*']

    # Roll number recalculation
    roll_recalc_max_retries: int = 3
    roll_recalc_retry_backoff_seconds: float = 0.05

    # PostgreSQL session limits
    db_statement_timeout: str = '30s'
    db_lock_timeout: str = '10s'

    model_config = {
        'env_file': '.env',
        'extra': 'ignore'
    }

settings = Settings()
