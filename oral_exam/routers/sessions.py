# oral_exam/routers/sessions.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends

from oral_exam.deps import get_current_user, get_session_service
from oral_exam.routers._errors import to_http
from oral_exam.schemas.assessment import (
    ItemOut,
    RestartSessionRequest,
    SessionOut,
    SessionStateOut,
    StartSessionRequest,
)
from oral_exam.services.errors import ActiveSessionExists, AssessmentDomainError
from oral_exam.services.session_manager import AssessmentSessionService, SessionState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assessment/sessions", tags=["assessment-sessions"])


def _state_out(state: SessionState, resumed: bool = False) -> SessionStateOut:
    return SessionStateOut(
        session=SessionOut.model_validate(state.session),
        items=[ItemOut.model_validate(i) for i in state.items],
        current_item=ItemOut.model_validate(state.current_item) if state.current_item is not None else None,
        resumed=resumed,
    )


@router.post("", response_model=SessionStateOut)
def start_session(
    payload: Optional[StartSessionRequest] = None,
    svc: AssessmentSessionService = Depends(get_session_service),
    current_user: dict = Depends(get_current_user),
):
    """
    Resume the learner's unfinished session if there is one, otherwise create one.
    """
    user_id = current_user["id"]
    payload = payload or StartSessionRequest()
    try:
        existing = svc.check_for_unfinished_session(user_id)
        if existing is not None:
            return _state_out(svc.resume_session(user_id, existing.id), resumed=True)
        try:
            state = svc.create_session(user_id, payload.mode, payload.module_type)
        except ActiveSessionExists as e:
            # lost a concurrent create; the winner's session is the one to resume
            logger.info("[SESSION] create raced user_id=%s winner=%s", user_id, e.session_id)
            return _state_out(svc.resume_session(user_id, e.session_id), resumed=True)
        return _state_out(state)
    except AssessmentDomainError as e:
        raise to_http(e)


@router.get("/unfinished", response_model=Optional[SessionOut])
def get_unfinished_session(
    svc: AssessmentSessionService = Depends(get_session_service),
    current_user: dict = Depends(get_current_user),
):
    session = svc.check_for_unfinished_session(current_user["id"])
    return SessionOut.model_validate(session) if session is not None else None


@router.get("/{session_id}", response_model=SessionStateOut)
def get_session_state(
    session_id: str,
    svc: AssessmentSessionService = Depends(get_session_service),
    current_user: dict = Depends(get_current_user),
):
    try:
        return _state_out(svc.resume_session(current_user["id"], session_id))
    except AssessmentDomainError as e:
        raise to_http(e)


@router.post("/{session_id}/next", response_model=SessionStateOut)
def next_item(
    session_id: str,
    svc: AssessmentSessionService = Depends(get_session_service),
    current_user: dict = Depends(get_current_user),
):
    try:
        return _state_out(svc.next_item(current_user["id"], session_id))
    except AssessmentDomainError as e:
        raise to_http(e)


@router.post("/{session_id}/modules/{module_type}/restart", response_model=SessionStateOut)
def restart_module(
    session_id: str,
    module_type: str,
    svc: AssessmentSessionService = Depends(get_session_service),
    current_user: dict = Depends(get_current_user),
):
    try:
        return _state_out(svc.restart_module(current_user["id"], session_id, module_type))
    except AssessmentDomainError as e:
        raise to_http(e)


@router.post("/{session_id}/restart", response_model=SessionStateOut)
def restart_session(
    session_id: str,
    payload: Optional[RestartSessionRequest] = None,
    svc: AssessmentSessionService = Depends(get_session_service),
    current_user: dict = Depends(get_current_user),
):
    payload = payload or RestartSessionRequest()
    try:
        return _state_out(svc.restart_session(current_user["id"], session_id, payload.mode, payload.module_type))
    except AssessmentDomainError as e:
        raise to_http(e)


@router.post("/{session_id}/abandon", response_model=SessionOut)
def abandon_session(
    session_id: str,
    svc: AssessmentSessionService = Depends(get_session_service),
    current_user: dict = Depends(get_current_user),
):
    try:
        return SessionOut.model_validate(svc.abandon_session(current_user["id"], session_id))
    except AssessmentDomainError as e:
        raise to_http(e)
