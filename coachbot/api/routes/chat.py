from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from coachbot.db.session import get_db
from coachbot.dependencies.session import get_identity
from coachbot.schemas.chat import ChatRequest, ChatResponse
from coachbot.services.chat import send_message
from coachbot.services.completion import CompletionFn, openai_complete
from coachbot.services.identity_resolver import IdentityResolution

router = APIRouter()


def get_completion() -> CompletionFn:
    return openai_complete


@router.post("/chat", response_model=ChatResponse)
def chat(
    body: ChatRequest,
    identity: IdentityResolution = Depends(get_identity),
    db: Session = Depends(get_db),
    complete: CompletionFn = Depends(get_completion),
):
    result = send_message(
        db,
        identity.account,
        body.message,
        subject_id=body.subject_id,
        mode=body.mode,
        complete=complete,
    )
    return {
        "reply": result.reply,
        "usage": result.usage,
        "daily_limit": result.daily_limit,
        "mode": result.mode.value,
        "subject_id": result.subject_id,
    }
