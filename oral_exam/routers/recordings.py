# oral_exam/routers/recordings.py
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from pydantic import TypeAdapter, ValidationError

from oral_exam.deps import get_conversation_agent, get_current_user, get_orchestrator, get_session_service
from oral_exam.routers._errors import to_http
from oral_exam.schemas.assessment import (
    AgentTurnOut,
    ConversationTurn,
    ConversationTurnRequest,
    ItemOut,
    ItemPhaseOut,
    ModuleProgressOut,
    SubmissionOut,
)
from oral_exam.services.conversation_agent import ConversationAgent
from oral_exam.services.errors import AssessmentDomainError
from oral_exam.services.recording_orchestrator import RecordingOrchestrator
from oral_exam.services.session_manager import AssessmentSessionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assessment", tags=["assessment-recordings"])

MAX_AUDIO_BYTES = 20 * 1024 * 1024
_turns_adapter = TypeAdapter(List[ConversationTurn])


def _parse_turns(raw: Optional[str]) -> Optional[List[dict]]:
    if not raw:
        return None
    try:
        turns = _turns_adapter.validate_python(json.loads(raw))
    except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"invalid turns: {e}")
    return [t.model_dump() for t in turns]


@router.post("/items/{item_id}/start", response_model=ItemPhaseOut)
def start_recording(
    item_id: str,
    orchestrator: RecordingOrchestrator = Depends(get_orchestrator),
    current_user: dict = Depends(get_current_user),
):
    try:
        item = orchestrator.start_recording(current_user["id"], item_id)
    except AssessmentDomainError as e:
        raise to_http(e)
    return ItemPhaseOut(item=ItemOut.model_validate(item), phase=orchestrator.phase_for(item))


@router.post("/items/{item_id}/submit", response_model=SubmissionOut)
async def submit_recording(
    item_id: str,
    audio: Optional[UploadFile] = File(None),
    transcript: Optional[str] = Form(None),
    turns: Optional[str] = Form(None, description="JSON list of {role, content}"),
    duration: Optional[float] = Form(None, ge=0),
    orchestrator: RecordingOrchestrator = Depends(get_orchestrator),
    current_user: dict = Depends(get_current_user),
):
    """
    Score one attempt. Upstream failures come back as status "error" with
    retryable=true; the item can be submitted again.
    """
    audio_bytes = None
    content_type = "audio/webm"
    if audio is not None:
        audio_bytes = await audio.read()
        if len(audio_bytes) > MAX_AUDIO_BYTES:
            raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="audio too large")
        content_type = audio.content_type or content_type

    try:
        # scoring blocks on external services
        outcome = await run_in_threadpool(
            orchestrator.submit,
            current_user["id"],
            item_id,
            audio=audio_bytes or None,
            transcript=transcript,
            turns=_parse_turns(turns),
            duration=duration,
            content_type=content_type,
        )
    except AssessmentDomainError as e:
        raise to_http(e)
    return SubmissionOut(**outcome.__dict__)


@router.post("/items/{item_id}/redo", response_model=ItemPhaseOut)
def redo_item(
    item_id: str,
    orchestrator: RecordingOrchestrator = Depends(get_orchestrator),
    current_user: dict = Depends(get_current_user),
):
    try:
        item = orchestrator.redo_item(current_user["id"], item_id)
    except AssessmentDomainError as e:
        raise to_http(e)
    return ItemPhaseOut(item=ItemOut.model_validate(item), phase=orchestrator.phase_for(item))


@router.post("/sessions/{session_id}/modules/{module_type}/redo", response_model=ModuleProgressOut)
def redo_module(
    session_id: str,
    module_type: str,
    orchestrator: RecordingOrchestrator = Depends(get_orchestrator),
    current_user: dict = Depends(get_current_user),
):
    try:
        return ModuleProgressOut.model_validate(orchestrator.redo_module(current_user["id"], session_id, module_type))
    except AssessmentDomainError as e:
        raise to_http(e)


@router.post("/sessions/{session_id}/modules/{module_type}/lock", response_model=ModuleProgressOut)
def lock_module(
    session_id: str,
    module_type: str,
    orchestrator: RecordingOrchestrator = Depends(get_orchestrator),
    current_user: dict = Depends(get_current_user),
):
    try:
        return ModuleProgressOut.model_validate(orchestrator.lock_module(current_user["id"], session_id, module_type))
    except AssessmentDomainError as e:
        raise to_http(e)


@router.post("/conversation/{item_id}/turn", response_model=AgentTurnOut)
def conversation_turn(
    item_id: str,
    payload: Optional[ConversationTurnRequest] = None,
    svc: AssessmentSessionService = Depends(get_session_service),
    agent: ConversationAgent = Depends(get_conversation_agent),
    current_user: dict = Depends(get_current_user),
):
    """Next agent line for a conversation item; the starter line when history is empty."""
    payload = payload or ConversationTurnRequest()
    try:
        item = svc.get_item(current_user["id"], item_id)
        if item.module_type != "conversation":
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="not a conversation item")
        scenario = item.prompt_payload.get("payload", {})
        history = [t.model_dump() for t in payload.history]
        reply = agent.next_turn(scenario, history, turn_number=len(history) + 1)
    except AssessmentDomainError as e:
        raise to_http(e)
    return AgentTurnOut(content=reply)
