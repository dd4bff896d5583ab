"""
Caller identity.

Authentication itself is owned upstream; this module only maps a bearer API
key to the AgentIdentity configured for it in AGENT_API_KEYS_JSON.
"""

from typing import Dict, Optional

from fastapi import Depends, Header, HTTPException
from pydantic import ValidationError as PydanticValidationError

from ..config import Settings, get_settings
from .enums import TrustTier
from .primitives import AgentIdentity


def resolve_identity(api_key: str, settings: Settings) -> Optional[AgentIdentity]:
    """Return the identity configured for ``api_key``, or None."""
    entry = settings.agent_api_keys.get(api_key)
    if not isinstance(entry, dict):
        return None
    try:
        return AgentIdentity.model_validate(entry)
    except PydanticValidationError:
        return None


def known_trust_tiers(settings: Settings) -> Dict[str, TrustTier]:
    """agent_id -> trust tier for every configured identity."""
    tiers: Dict[str, TrustTier] = {}
    for key in settings.agent_api_keys:
        identity = resolve_identity(key, settings)
        if identity is not None:
            tiers[identity.agent_id] = identity.trust_tier
    return tiers


async def require_agent(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> AgentIdentity:
    """Dependency: the authenticated agent, or 401."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing API key")

    identity = resolve_identity(authorization[7:].strip(), settings)
    if identity is None:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return identity
