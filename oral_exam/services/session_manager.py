# oral_exam/services/session_manager.py
"""
Assessment session lifecycle.

created -> in_progress -> completed, with abandoned reachable from either
non-terminal state. Every command returns the resulting SessionState so
callers never need a separate re-read.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from oral_exam.config import settings
from oral_exam.models.assessment_item import AssessmentItem, ITEM_STATUSES
from oral_exam.models.assessment_session import AssessmentSession, ACTIVE_STATUSES
from oral_exam.models.module_progress import ModuleProgress
from oral_exam.services import module_locks
from oral_exam.services.errors import (
    ActiveSessionExists,
    InvalidArgument,
    InvalidTransition,
    ItemNotFound,
    SessionCreationError,
    SessionNotFound,
)
from oral_exam.services.prompt_bank import (
    MODULE_ITEM_COUNTS,
    MODULE_ORDER,
    PromptBank,
    get_prompt_bank,
    module_position,
    validate_module,
)
from oral_exam.services.seeded_select import generate_seed, seeded_select

logger = logging.getLogger(__name__)

MODES = ("full", "single_module")


@dataclass
class SessionState:
    session: AssessmentSession
    items: List[AssessmentItem]
    current_item: Optional[AssessmentItem]


def item_sort_key(item: AssessmentItem):
    return (module_position(item.module_type), item.item_index)


def first_incomplete(items: List[AssessmentItem]) -> Optional[AssessmentItem]:
    return next((i for i in items if i.status != "completed"), None)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AssessmentSessionService:
    def __init__(self, db: Session, prompt_bank: Optional[PromptBank] = None):
        self.db = db
        self.prompt_bank = prompt_bank or get_prompt_bank()

    # ------------------------
    # reads
    # ------------------------
    def get_session(self, user_id: str, session_id: str) -> AssessmentSession:
        session = (
            self.db.query(AssessmentSession)
            .filter(AssessmentSession.id == session_id, AssessmentSession.user_id == user_id)
            .first()
        )
        if not session:
            raise SessionNotFound(session_id)
        return session

    def get_item(self, user_id: str, item_id: str) -> AssessmentItem:
        item = (
            self.db.query(AssessmentItem)
            .join(AssessmentSession, AssessmentSession.id == AssessmentItem.session_id)
            .filter(AssessmentItem.id == item_id, AssessmentSession.user_id == user_id)
            .first()
        )
        if not item:
            raise ItemNotFound(item_id)
        return item

    def ordered_items(self, session_id: str) -> List[AssessmentItem]:
        items = self.db.query(AssessmentItem).filter(AssessmentItem.session_id == session_id).all()
        return sorted(items, key=item_sort_key)

    def get_module_items(self, user_id: str, session_id: str, module_type: str) -> List[AssessmentItem]:
        self.get_session(user_id, session_id)
        validate_module(module_type)
        return [i for i in self.ordered_items(session_id) if i.module_type == module_type]

    def check_for_unfinished_session(self, user_id: str) -> Optional[AssessmentSession]:
        """Most recent non-terminal session; tolerates duplicates by taking the newest."""
        return (
            self.db.query(AssessmentSession)
            .filter(AssessmentSession.user_id == user_id, AssessmentSession.status.in_(ACTIVE_STATUSES))
            .order_by(AssessmentSession.created_at.desc())
            .first()
        )

    def _state(self, session: AssessmentSession, current: Optional[AssessmentItem] = None,
               items: Optional[List[AssessmentItem]] = None) -> SessionState:
        return SessionState(session=session, items=items or self.ordered_items(session.id), current_item=current)

    def _point_at(self, session: AssessmentSession, item: Optional[AssessmentItem]) -> None:
        if item is not None:
            session.current_module = item.module_type
            session.current_item_index = item.item_index

    # ------------------------
    # commands
    # ------------------------
    def create_session(self, user_id: str, mode: str = "full", module_type: Optional[str] = None,
                       seed: Optional[int] = None) -> SessionState:
        """
        Create a session and its full item batch in one transaction.

        Raises:
            InvalidArgument: unknown mode/module
            ActiveSessionExists: the user already has a non-terminal session
            SessionCreationError: the write failed; nothing was persisted
        """
        if mode not in MODES:
            raise InvalidArgument(f"unknown mode: {mode}")
        if mode == "single_module":
            if not module_type:
                raise InvalidArgument("single_module mode needs module_type")
            modules = [validate_module(module_type)]
        else:
            module_type = None
            modules = list(MODULE_ORDER)

        existing = self.check_for_unfinished_session(user_id)
        if existing is not None:
            raise ActiveSessionExists(existing.id)

        seed = generate_seed() if seed is None else seed
        session_id = str(uuid.uuid4())
        selection, versions, items = {}, {}, []

        for module in modules:
            chosen = seeded_select(self.prompt_bank.get_prompts(module), MODULE_ITEM_COUNTS[module], seed)
            selection[module] = [p.id for p in chosen]
            versions[module] = self.prompt_bank.get_prompt_version(module)
            for index, prompt in enumerate(chosen):
                items.append(AssessmentItem(
                    session_id=session_id,
                    module_type=module,
                    item_index=index,
                    prompt_id=prompt.id,
                    prompt_payload=prompt.model_dump(),
                    status="not_started",
                    attempt_number=1,
                ))

        session = AssessmentSession(
            id=session_id,
            user_id=user_id,
            mode=mode,
            module_type=module_type,
            status="created",
            seed=seed,
            prompt_versions=versions,
            scorer_version=settings.scorer_version,
            asr_version=settings.asr_version,
            prompt_selection=selection,
            current_module=modules[0],
            current_item_index=0,
            meta={},
        )

        try:
            self.db.add(session)
            self.db.flush()
            self.db.add_all(items)
            self.db.add_all(
                ModuleProgress(session_id=session_id, module_type=m, attempt_number=1, locked=False)
                for m in modules
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            winner = self.check_for_unfinished_session(user_id)
            if winner is not None:
                raise ActiveSessionExists(winner.id) from e
            raise SessionCreationError(str(e)) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("[SESSION] creation failed user_id=%s: %s", user_id, e)
            raise SessionCreationError(str(e)) from e

        logger.info(
            "[SESSION] created session_id=%s user_id=%s mode=%s items=%s seed=%s",
            session_id, user_id, mode, len(items), seed,
        )
        ordered = sorted(items, key=item_sort_key)
        return self._state(session, ordered[0] if ordered else None, ordered)

    def resume_session(self, user_id: str, session_id: str) -> SessionState:
        """
        Current item is the first item (in exam order) not yet completed;
        None once everything is done. Safe to call repeatedly.
        """
        session = self.get_session(user_id, session_id)
        items = self.ordered_items(session.id)

        if session.status not in ACTIVE_STATUSES:
            return self._state(session, None, items)

        if session.status == "created":
            session.status = "in_progress"
            session.started_at = session.started_at or _now()

        current = first_incomplete(items)
        self._point_at(session, current)
        self.db.commit()
        return self._state(session, current, items)

    def next_item(self, user_id: str, session_id: str) -> SessionState:
        """
        Move to the next incomplete item after the current one, wrapping to
        earlier skipped items. With nothing left the session completes.
        """
        session = self.get_session(user_id, session_id)
        if session.status not in ACTIVE_STATUSES:
            raise InvalidTransition(f"session {session_id} is {session.status}")
        if session.status == "created":
            session.status = "in_progress"
            session.started_at = session.started_at or _now()

        items = self.ordered_items(session.id)
        pos = next(
            (n for n, i in enumerate(items)
             if i.module_type == session.current_module and i.item_index == session.current_item_index),
            -1,
        )
        candidates = items[pos + 1:] + items[:max(pos, 0)] + ([items[pos]] if pos >= 0 else [])
        nxt = first_incomplete(candidates)

        leaving = session.current_module
        if nxt is None:
            for module in {i.module_type for i in items}:
                module_locks.lock_module(self.db, session.id, module)
            session.status = "completed"
            session.completed_at = _now()
            self.db.commit()
            logger.info("[SESSION] completed session_id=%s", session.id)
            return self._state(session, None, items)

        if leaving and nxt.module_type != leaving:
            module_locks.lock_module(self.db, session.id, leaving)

        self._point_at(session, nxt)
        self.db.commit()
        return self._state(session, nxt, items)

    def update_item_status(self, user_id: str, item_id: str, status: str, result_ref=None) -> AssessmentItem:
        if status not in ITEM_STATUSES:
            raise InvalidArgument(f"unknown item status: {status}")
        item = self.get_item(user_id, item_id)
        item.status = status
        if result_ref is not None:
            item.result_ref = result_ref
        self.db.commit()
        return item

    def restart_module(self, user_id: str, session_id: str, module_type: str) -> SessionState:
        """Reset one module's items in place; same session, same prompts."""
        session = self.get_session(user_id, session_id)
        if session.status not in ACTIVE_STATUSES:
            raise InvalidTransition(f"session {session_id} is {session.status}")

        validate_module(module_type)
        items = self.ordered_items(session.id)
        module_items = [i for i in items if i.module_type == module_type]
        if not module_items:
            raise InvalidArgument(f"{module_type} is not part of session {session_id}")

        try:
            module_locks.reset_module(self.db, session.id, module_type, module_items)
        except Exception:
            self.db.rollback()
            raise
        self._point_at(session, module_items[0])
        self.db.commit()
        logger.info("[SESSION] module restarted session_id=%s module=%s", session.id, module_type)
        return self._state(session, module_items[0], items)

    def abandon_session(self, user_id: str, session_id: str) -> AssessmentSession:
        session = self.get_session(user_id, session_id)
        if session.status not in ACTIVE_STATUSES:
            raise InvalidTransition(f"session {session_id} is {session.status}")
        session.status = "abandoned"
        self.db.commit()
        logger.info("[SESSION] abandoned session_id=%s", session.id)
        return session

    def restart_session(self, user_id: str, session_id: str, mode: Optional[str] = None,
                        module_type: Optional[str] = None) -> SessionState:
        """Abandon this session and start a new one with a fresh seed."""
        session = self.get_session(user_id, session_id)
        new_mode = mode or session.mode
        new_module = module_type or session.module_type
        if new_mode not in MODES:
            raise InvalidArgument(f"unknown mode: {new_mode}")
        if new_mode == "single_module" and not new_module:
            raise InvalidArgument("single_module mode needs module_type")

        if session.status in ACTIVE_STATUSES:
            session.status = "abandoned"
            self.db.flush()

        # a failed create rolls the abandon back with it
        state = self.create_session(user_id, new_mode, new_module)
        logger.info("[SESSION] restarted old=%s new=%s", session_id, state.session.id)
        return state
