from __future__ import annotations

from pydantic import BaseModel


class RequestIdentity(BaseModel):
    email: str | None = None
    auth_source: str = "anonymous"
    user_id: int | None = None
    display_name: str | None = None

    @property
    def actor_id(self) -> str | None:
        return self.email

    @property
    def editor_name(self) -> str:
        return self.display_name or self.email or ""
