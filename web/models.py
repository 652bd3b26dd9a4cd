"""
Response models for the browser login routes in web/routes.py.

Kept apart from api/models.py so that web/ never imports from api/.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from auth.models import DelegatedIdentity


class ProfileResponse(BaseModel):
    """The provider profile stored in a browser session."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    verified_email: bool
    name: str
    given_name: str
    family_name: str
    picture: str
    locale: str

    @classmethod
    def from_identity(cls, identity: DelegatedIdentity) -> "ProfileResponse":
        return cls(
            id=identity.id,
            email=identity.email,
            verified_email=identity.verified_email,
            name=identity.name,
            given_name=identity.given_name,
            family_name=identity.family_name,
            picture=identity.picture,
            locale=identity.locale,
        )


class SessionUserResponse(BaseModel):
    """Response for GET /api/user."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    user: ProfileResponse


class SessionStatusResponse(BaseModel):
    """Response for GET /. login_url is set only when not authenticated."""

    model_config = ConfigDict(frozen=True)

    authenticated: bool
    user: Optional[ProfileResponse] = None
    login_url: Optional[str] = None
