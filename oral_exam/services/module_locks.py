# oral_exam/services/module_locks.py
"""
Module-level attempt counters, one-way locks, and the item reset shared by
item redo, module redo and module restart.
"""
import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy.orm import Session

from oral_exam.models.assessment_item import AssessmentItem
from oral_exam.models.module_progress import ModuleProgress
from oral_exam.models.skill_recording import SkillRecording
from oral_exam.services.errors import ModuleLocked, RedoNotAllowed

logger = logging.getLogger(__name__)

IN_FLIGHT_STATUSES = ("recording", "processing")


def get_progress(db: Session, session_id: str, module_type: str) -> ModuleProgress:
    progress = (
        db.query(ModuleProgress)
        .filter(ModuleProgress.session_id == session_id, ModuleProgress.module_type == module_type)
        .first()
    )
    if progress is None:
        progress = ModuleProgress(session_id=session_id, module_type=module_type, attempt_number=1, locked=False)
        db.add(progress)
        db.flush()
    return progress


def is_locked(db: Session, session_id: str, module_type: str) -> bool:
    return get_progress(db, session_id, module_type).locked


def ensure_unlocked(db: Session, session_id: str, module_type: str) -> None:
    if is_locked(db, session_id, module_type):
        raise ModuleLocked(f"{module_type} is locked for session {session_id}")


def lock_module(db: Session, session_id: str, module_type: str) -> ModuleProgress:
    """One-way; locking an already locked module changes nothing."""
    progress = get_progress(db, session_id, module_type)
    if not progress.locked:
        progress.locked = True
        progress.locked_at = datetime.now(timezone.utc)
        db.flush()
        logger.info("[LOCK] session_id=%s module=%s", session_id, module_type)
    return progress


def supersede_recordings(db: Session, item_id: str) -> int:
    """Mark the item's active recordings superseded. Rows are never deleted."""
    rows = (
        db.query(SkillRecording)
        .filter(SkillRecording.item_id == item_id, SkillRecording.superseded.is_(False))
        .all()
    )
    for row in rows:
        row.superseded = True
        row.used_for_scoring = False
    return len(rows)


def reset_item(db: Session, item: AssessmentItem) -> AssessmentItem:
    if item.status in IN_FLIGHT_STATUSES:
        raise RedoNotAllowed(f"item {item.id} is {item.status}")
    supersede_recordings(db, item.id)
    item.status = "not_started"
    item.attempt_number = item.attempt_number + 1
    item.result_ref = None
    return item


def reset_module(db: Session, session_id: str, module_type: str, items: List[AssessmentItem]) -> ModuleProgress:
    """Reset every item of one module and bump the module attempt counter."""
    ensure_unlocked(db, session_id, module_type)
    busy = [i.id for i in items if i.status in IN_FLIGHT_STATUSES]
    if busy:
        raise RedoNotAllowed(f"{module_type} has items in flight: {', '.join(busy)}")

    for item in items:
        reset_item(db, item)

    progress = get_progress(db, session_id, module_type)
    progress.attempt_number = progress.attempt_number + 1
    db.flush()
    logger.info(
        "[LOCK] module reset session_id=%s module=%s attempt=%s items=%s",
        session_id, module_type, progress.attempt_number, len(items),
    )
    return progress
