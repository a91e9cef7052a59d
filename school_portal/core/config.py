from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Database Configuration
    database_url: str = "sqlite:///./school_portal.db"
    direct_url: str = ""  # Direct connection URL for migrations/admin operations

    # Supabase Configuration
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_storage_bucket: str = "assignment-files"

    # JWT Configuration
    jwt_secret_key: str = "your-super-secret-jwt-key-change-this-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    # Application Configuration
    app_name: str = "School Portal"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration - store as string, parse as needed
    cors_origins_str: str = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080"

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins string into a list"""
        return [origin.strip() for origin in self.cors_origins_str.split(',') if origin.strip()]

    # Security
    bcrypt_rounds: int = 12

    # Assignment workflow
    auto_grade_max_attempts: int = 3
    countdown_tick_seconds: float = 1.0

    # Query cache
    query_cache_ttl_seconds: int = 60

    # Chat
    chat_history_limit: int = 100

    # Assignment file uploads
    max_upload_size_mb: int = 10

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
