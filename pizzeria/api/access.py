"""
Pizzeria POS — Navigation access decisions for the front end
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from pizzeria.api.deps import get_optional_actor
from pizzeria.core.access_policy import ActorContext, evaluate, home_for
from pizzeria.schemas.auth import AccessDecisionResponse

router = APIRouter(tags=["access"])


def _normalise(path: str) -> str:
    # Only same-site paths; never follow an absolute URL
    if not path.startswith("/") or path.startswith("//"):
        return "/"
    return path


@router.get("/access/check", response_model=AccessDecisionResponse)
async def check_access(
    path: str = Query(..., examples=["/dashboard/admin"]),
    actor: ActorContext | None = Depends(get_optional_actor),
):
    path = _normalise(path)
    decision = evaluate(actor, path)
    return AccessDecisionResponse(
        path=path,
        allowed=decision.allowed,
        category=decision.category,
        redirect_to=decision.redirect_to,
    )


@router.get("/navigate")
async def navigate(
    path: str | None = Query(None),
    actor: ActorContext | None = Depends(get_optional_actor),
):
    """Redirect to `path` when allowed, otherwise to the actor's home or to sign-in."""
    if path is None:
        return RedirectResponse(home_for(actor.role if actor else None), status_code=307)
    path = _normalise(path)
    decision = evaluate(actor, path)
    return RedirectResponse(path if decision.allowed else decision.redirect_to, status_code=307)
