"""
Single persistent thread for plans without subjects.
Stored in the database so history survives restarts and is shared across workers.
"""
from datetime import timedelta
from typing import Dict, List

from sqlalchemy.orm import Session

from coachbot.models.memory_turn import MemoryTurn
from coachbot.utils.session_keys import utc_now

MAX_TURNS = 20


def get_recent_turns(db: Session, session_id: str, limit: int = MAX_TURNS) -> List[Dict[str, str]]:
    rows = (
        db.query(MemoryTurn)
        .filter(MemoryTurn.session_id == session_id)
        .order_by(MemoryTurn.created_at.desc(), MemoryTurn.id.desc())
        .limit(limit)
        .all()
    )
    return [{"role": row.role, "content": row.content} for row in reversed(rows)]


def append_turns(db: Session, session_id: str, turns: List[Dict[str, str]]) -> None:
    base = utc_now()
    for offset, turn in enumerate(turns):
        db.add(MemoryTurn(
            session_id=session_id,
            role=turn["role"],
            content=turn["content"],
            created_at=base + timedelta(microseconds=offset),
        ))
    db.commit()
