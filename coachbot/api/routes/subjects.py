from typing import Tuple

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from coachbot.core.entitlements import Entitlements, Plan, assert_entitlement, get_entitlements
from coachbot.core.errors import ErrorCode
from coachbot.db.session import get_db
from coachbot.dependencies.session import require_identity
from coachbot.schemas.account import OkResponse
from coachbot.schemas.subject import (
    SubjectCreate,
    SubjectEnvelope,
    SubjectListResponse,
    SubjectMessagesResponse,
    SubjectUpdate,
)
from coachbot.services import subject_store
from coachbot.services.identity_resolver import IdentityResolution

router = APIRouter()


def _subject_entitlements(identity: IdentityResolution) -> Tuple[Plan, Entitlements]:
    plan = identity.account.plan_tier
    ent = get_entitlements(plan)
    assert_entitlement(ent.max_subjects > 0, ErrorCode.UPGRADE_REQUIRED, "Subjects are available on paid plans.")
    return plan, ent


@router.get("", response_model=SubjectListResponse)
def list_subjects(
    identity: IdentityResolution = Depends(require_identity),
    db: Session = Depends(get_db),
):
    plan, ent = _subject_entitlements(identity)
    subjects = subject_store.list_subjects(db, identity.session_id)
    return {"subjects": subjects, "plan": plan.value, "entitlements": ent.to_dict()}


@router.post("", response_model=SubjectEnvelope)
def create_subject(
    body: SubjectCreate,
    identity: IdentityResolution = Depends(require_identity),
    db: Session = Depends(get_db),
):
    plan, ent = _subject_entitlements(identity)
    subject = subject_store.create_subject(db, identity.session_id, body.title, body.mode, plan)
    return {"subject": subject, "plan": plan.value, "entitlements": ent.to_dict()}


@router.patch("/{subject_id}", response_model=SubjectEnvelope)
def update_subject(
    subject_id: str,
    body: SubjectUpdate,
    identity: IdentityResolution = Depends(require_identity),
    db: Session = Depends(get_db),
):
    plan, ent = _subject_entitlements(identity)
    title = body.title.strip() if body.title and body.title.strip() else None
    mode = body.mode.strip() if body.mode and body.mode.strip() else None
    subject = subject_store.update_subject(db, identity.session_id, subject_id, title=title, mode=mode)
    return {"subject": subject, "plan": plan.value, "entitlements": ent.to_dict()}


@router.delete("/{subject_id}", response_model=OkResponse)
def delete_subject(
    subject_id: str,
    identity: IdentityResolution = Depends(require_identity),
    db: Session = Depends(get_db),
):
    _subject_entitlements(identity)
    subject_store.delete_subject(db, identity.session_id, subject_id)
    return {"ok": True}


@router.get("/{subject_id}/messages", response_model=SubjectMessagesResponse)
def list_subject_messages(
    subject_id: str,
    limit: int = Query(subject_store.DEFAULT_MESSAGE_PAGE, ge=1, le=200),
    identity: IdentityResolution = Depends(require_identity),
    db: Session = Depends(get_db),
):
    plan, ent = _subject_entitlements(identity)
    messages = subject_store.list_messages(db, identity.session_id, subject_id, limit)
    return {"messages": messages, "plan": plan.value, "entitlements": ent.to_dict()}
