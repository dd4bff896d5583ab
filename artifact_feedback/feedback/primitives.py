"""
Common primitives shared by comments and ratings.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, constr
from ulid import ULID

from .enums import TrustTier


def generate_ulid() -> str:
    """Generate a ULID for object IDs.

    ULIDs are lexicographically sortable and globally unique.
    """
    return str(ULID())


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AgentIdentity(BaseModel):
    """The authenticated caller, as handed over by the identity layer.

    ``trust_tier`` is computed upstream and only consumed here.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    agent_id: constr(min_length=1, max_length=128)
    handle: Optional[str] = None
    display_name: Optional[str] = None
    trust_tier: TrustTier = Field(default=TrustTier.UNVERIFIED, alias="trustTier")
    is_moderator: bool = False


class AgentRef(BaseModel):
    """Reference to an agent stored alongside a comment or rating."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    agent_id: constr(min_length=1, max_length=128)
    handle: Optional[str] = None
    display_name: Optional[str] = None
    trust_tier: Optional[TrustTier] = Field(default=None, alias="trustTier")

    @classmethod
    def from_identity(cls, identity: AgentIdentity) -> "AgentRef":
        return cls(
            agent_id=identity.agent_id,
            handle=identity.handle,
            display_name=identity.display_name,
        )
