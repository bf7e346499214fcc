import os
from dataclasses import dataclass, field


def _split_origins(raw: str) -> tuple[str, ...]:
    return tuple(origin.strip() for origin in raw.split(",") if origin.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("LMS_DATABASE_URL", os.getenv("DATABASE_URL", ""))
    jwt_secret: str = os.getenv("LMS_JWT_SECRET", os.getenv("JWT_SECRET", "change-me-in-production"))
    jwt_algorithm: str = os.getenv("LMS_JWT_ALGORITHM", "HS256")
    jwt_exp_minutes: int = int(os.getenv("LMS_JWT_EXP_MINUTES", "480"))
    default_user_password: str = os.getenv("LMS_DEFAULT_USER_PASSWORD", "MadaMaths2026!")
    bootstrap_admin_username: str = os.getenv("LMS_BOOTSTRAP_ADMIN_USERNAME", "admin")
    bootstrap_admin_password: str = os.getenv("LMS_BOOTSTRAP_ADMIN_PASSWORD", "admin123")
    bootstrap_admin_full_name: str = os.getenv("LMS_BOOTSTRAP_ADMIN_FULL_NAME", "Administrateur Principal")
    cors_origins: tuple[str, ...] = field(
        default_factory=lambda: _split_origins(
            os.getenv("LMS_CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
        )
    )


settings = Settings()
