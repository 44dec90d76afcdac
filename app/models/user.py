from datetime import datetime
from typing import Literal

from beanie import Document, Indexed
from pydantic import Field


class User(Document):
    google_sub: Indexed(str, unique=True)
    email: Indexed(str)
    name: str = ""
    picture: str | None = None
    role: Literal["user", "admin"] = "user"
    session_version: int = 0
    last_login_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    class Settings:
        name = "users"
