"""
Webhook Payloads

The parts of GitHub's ping and push payloads the listener reads.
Unknown fields are ignored.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class Owner(BaseModel):
    login: Optional[str] = None


class Repository(BaseModel):
    name: Optional[str] = None
    owner: Optional[Owner] = None
    git_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("git_url", "gitUrl")
    )

    @property
    def full_name(self) -> str:
        login = self.owner.login if self.owner else None
        return f"{login}/{self.name}"


class Hook(BaseModel):
    url: Optional[str] = None


class PingPayload(BaseModel):
    hook_id: Optional[int] = None
    hook: Optional[Hook] = None
    repository: Optional[Repository] = None


class PushPayload(BaseModel):
    ref: Optional[str] = None
    after: Optional[str] = None
    repository: Optional[Repository] = None


class HookRegistration(BaseModel):
    """Body of the administrative hook registration request."""

    id: int
    url: str
    correct: bool = True
