"""OAuth connection flow, mounted at /api/oauth.

``authorize`` hands the signed-in client a provider URL with a one-time CSRF
state; the provider redirects back to ``callback``, which exchanges the
code and stores the encrypted token on the user's connection.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query

from api.deps import Services, get_services, require_user
from hub.errors import IntegrationNotFound, InvalidParams
from hub.integrations.providers import generate_state
from hub.models import User

router = APIRouter()


@router.get("/{slug}/authorize")
async def authorize(
    slug: str,
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    integration = await services.store.get_by_slug(slug)
    if integration is None:
        raise IntegrationNotFound(slug)
    provider = services.vault.providers.require(slug)

    state = generate_state()
    services.oauth_states.touch(state, (user.id, slug))
    return {"authorization_url": provider.authorization_url_for(state), "state": state}


@router.get("/{slug}/callback")
async def callback(
    slug: str,
    code: str = Query(...),
    state: str = Query(...),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    pending = services.oauth_states.pop(state)
    if pending is None or pending[1] != slug:
        raise InvalidParams("Invalid or expired OAuth state")
    user_id = pending[0]

    integration = await services.store.get_by_slug(slug)
    if integration is None:
        raise IntegrationNotFound(slug)

    await services.vault.connect(user_id, integration.id, slug, code)
    return {"connected": True, "integration": slug}
