from pydantic_settings import BaseSettings
from typing import List, Optional
from pydantic import Field

class Settings(BaseSettings):
    SECRET_KEY: str = Field("change-me-in-production")
    ALGORITHM: str = Field("HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(60 * 24)

    DATABASE_URL: str = Field("sqlite+aiosqlite:///./perfhub.db")
    SQLALCHEMY_DATABASE_URL: Optional[str] = None
    SQLALCHEMY_ECHO: bool = Field(False)

    # Comma-separated origins for the SPA. Empty → no cross-origin access.
    CORS_ORIGINS: Optional[str] = "http://localhost:5173"

    # Allowed drift when checking that KPI weights add up to 100%.
    WEIGHT_TOLERANCE: float = Field(0.01)

    LOG_LEVEL: str = Field("INFO")

    # Bootstrap admin created by `python -m app.seed`
    ADMIN_USERNAME: str = Field("admin")
    ADMIN_PASSWORD: str = Field("admin123")

    model_config = {
        "env_file": ".env",
        "extra": "allow",
    }

    @property
    def effective_database_url(self) -> str:
        url = self.SQLALCHEMY_DATABASE_URL or self.DATABASE_URL
        # Ensure asyncpg is used
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    @property
    def cors_origins(self) -> List[str]:
        if not self.CORS_ORIGINS:
            return []
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

settings = Settings()
