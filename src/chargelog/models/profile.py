"""Identity and user profile models."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field

from chargelog.models._base import Timestamp, TrackerBaseModel


class Identity(TrackerBaseModel):
    """The authenticated user as reported by the auth provider.

    ``uid`` is opaque and scopes every store operation.  ``id_token`` is
    the bearer credential for the document store and is never exported.
    """

    uid: str = Field(validation_alias=AliasChoices("uid", "localId", "userId"))
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = Field(default=None, validation_alias=AliasChoices("photoUrl", "photoURL", "photo_url"))
    id_token: str | None = Field(default=None, repr=False, exclude=True)
    refresh_token: str | None = Field(default=None, repr=False, exclude=True)

    @property
    def default_display_name(self) -> str:
        """Display name, falling back to the local part of the email."""
        if self.display_name:
            return self.display_name
        if self.email:
            return self.email.split("@", 1)[0]
        return ""

    def public_attributes(self) -> dict[str, Any]:
        """Attributes safe to write into an export file."""
        return {
            "uid": self.uid,
            "email": self.email,
            "displayName": self.display_name,
            "photoURL": self.photo_url,
        }


class UserProfile(TrackerBaseModel):
    """Profile document stored at ``users/<uid>``."""

    id: str = ""
    display_name: str = ""
    email: str | None = None
    photo_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("photoURL", "photoUrl", "photo_url"),
        serialization_alias="photoURL",
    )
    created_at: Timestamp = None

    @classmethod
    def for_identity(cls, identity: Identity, **additional: Any) -> UserProfile:
        """Default profile for a first sign-in."""
        fields: dict[str, Any] = {
            "id": identity.uid,
            "display_name": identity.default_display_name,
            "email": identity.email,
            "photo_url": identity.photo_url,
        }
        fields.update(additional)
        return cls(**fields)
