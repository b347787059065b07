"""
Application settings

Built once at startup from the environment (and an optional .env file) and
handed to create_app(); handlers reach it through request.app.state.
"""
import os
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import Request
from pydantic import BaseModel, Field


class Settings(BaseModel):
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "sporty"

    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(60 * 24 * 7, ge=1)

    bcrypt_rounds: int = Field(12, ge=4, le=31)

    environment: str = "development"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    message_edit_window_minutes: int = 5

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        values = {
            "database_url": os.getenv("DATABASE_URL"),
            "database_name": os.getenv("DATABASE_NAME"),
            "jwt_secret": os.getenv("JWT_SECRET"),
            "jwt_algorithm": os.getenv("JWT_ALGORITHM"),
            "access_token_expire_minutes": os.getenv("JWT_EXPIRE_MINUTES"),
            "bcrypt_rounds": os.getenv("BCRYPT_ROUNDS"),
            "environment": os.getenv("ENVIRONMENT"),
            "message_edit_window_minutes": os.getenv("MESSAGE_EDIT_WINDOW_MINUTES"),
        }
        origins = os.getenv("CORS_ORIGIN")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        return cls(**{k: v for k, v in values.items() if v is not None})


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
