from fastapi import APIRouter, Depends, Response

from coachbot.dependencies.session import clear_session_cookie, get_identity, set_session_cookie
from coachbot.schemas.account import OkResponse, SessionResponse
from coachbot.services.identity_resolver import IdentityResolution

router = APIRouter()


@router.get("/session", response_model=SessionResponse)
def get_session(response: Response, identity: IdentityResolution = Depends(get_identity)):
    """Resolve (or mint) the caller's session and refresh the cookie's lifetime."""
    set_session_cookie(response, identity.session_id)
    return {"session_id": identity.session_id}


@router.post("/session/reset", response_model=OkResponse)
def reset_session(response: Response):
    clear_session_cookie(response)
    return {"ok": True}
