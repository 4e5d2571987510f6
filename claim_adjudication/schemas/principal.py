"""
Authenticated principal supplied by the identity provider.
"""

from pydantic import BaseModel, ConfigDict, Field

from claim_adjudication.core.enums import UserRole


class Principal(BaseModel):
    """Caller identity; the core only authorizes on `role`."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Principal identifier")
    role: UserRole = Field(default=UserRole.USER, description="Principal role")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
