"""
Current User Model.

Built from the ``/auth/me`` payload after its camelCase keys have been
normalised to snake_case (see ``session_client.utils.string_helpers``).
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """The account behind the current session cookie."""

    id: str
    email: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_admin: bool = False
    is_moderator: bool = False
    is_super_admin: bool = False
    totp_verified: bool = False

    model_config = {"from_attributes": True, "extra": "ignore", "coerce_numbers_to_str": True}

    @property
    def display_name(self) -> str:
        return self.first_name or self.username or self.email or self.id
