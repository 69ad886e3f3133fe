import logging
import os
from typing import List

from pydantic import BaseModel

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173"


class Settings(BaseModel):
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    access_token_expire_days: int = 30
    database_url: str = "sqlite:///./expenses.db"
    bcrypt_rounds: int = 10
    cors_origins: List[str] = []
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        secret = os.getenv("JWT_SECRET", "")
        if not secret:
            raise RuntimeError("JWT_SECRET is not set")

        origins = os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
        return cls(
            jwt_secret=secret,
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            access_token_expire_days=int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "30")),
            database_url=os.getenv("DATABASE_URL", "sqlite:///./expenses.db"),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "10")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
