import os
from dataclasses import dataclass, field


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("ROSTER_DATABASE_URL", os.getenv("DATABASE_URL", ""))
    jwt_secret: str = os.getenv("ROSTER_JWT_SECRET", os.getenv("SUPABASE_JWT_SECRET", "change-me-in-production"))
    jwt_algorithm: str = os.getenv("ROSTER_JWT_ALGORITHM", "HS256")
    jwt_audience: str = os.getenv("ROSTER_JWT_AUDIENCE", "authenticated")
    log_level: str = os.getenv("ROSTER_LOG_LEVEL", "INFO")
    cors_origins: tuple[str, ...] = field(
        default_factory=lambda: _split_csv(
            os.getenv("ROSTER_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
        )
    )


settings = Settings()
