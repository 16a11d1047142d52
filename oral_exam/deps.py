# oral_exam/deps.py
import logging

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from oral_exam.config import settings
from oral_exam.db.base import SessionLocal
from oral_exam.models.user_profile import UserProfile
from oral_exam.services.conversation_agent import ConversationAgent
from oral_exam.services.prompt_bank import PromptBank, get_prompt_bank as _shared_prompt_bank
from oral_exam.services.pronunciation_service import PronunciationService
from oral_exam.services.recording_orchestrator import RecordingOrchestrator
from oral_exam.services.rubric_scoring import OpenAIRubricClient, build_rubric_scorer
from oral_exam.services.session_manager import AssessmentSessionService
from oral_exam.services.storage_service import RecordingStorage
from oral_exam.services.stt_service import STTService
from oral_exam.services.supa_auth import verify_bearer
from oral_exam.services.tts_service import TTSService

logger = logging.getLogger(__name__)


# ----------------------------
# DB session
# ----------------------------
def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ----------------------------
# current user
# ----------------------------
async def get_current_user(
    authorization: str | None = Header(None),
):
    """
    Auth runs on its own short DB session so the request session is not held open.
    """
    try:
        claims = await verify_bearer(authorization)
    except Exception as e:
        logger.info("verify_bearer failed: %r", e)
        raise HTTPException(status_code=401, detail="unauthorized")

    with SessionLocal() as db:
        prof = db.get(UserProfile, claims["user_id"])
        if prof is None:
            prof = UserProfile(id=claims["user_id"], status="active")
            db.add(prof)
            db.commit()
            db.refresh(prof)

    return {
        "id": claims["user_id"],
        "email": claims.get("email"),
        "profile": prof,
    }


# ----------------------------
# services
# ----------------------------
def get_prompt_bank() -> PromptBank:
    return _shared_prompt_bank()


def get_stt() -> STTService:
    return STTService(
        language=settings.stt_language,
        timeout=settings.stt_timeout_sec,
        ffmpeg_path=settings.ffmpeg_path,
        key_path=settings.google_stt_key_path,
    )


def get_pronunciation() -> PronunciationService:
    return PronunciationService(
        key=settings.azure_speech_key,
        region=settings.azure_speech_region,
        language=settings.stt_language,
        timeout=settings.assessment_timeout_sec,
        ffmpeg_path=settings.ffmpeg_path,
    )


def get_rubric_scorer():
    client = OpenAIRubricClient(
        api_key=settings.openai_api_key,
        model=settings.llm_model,
        timeout=settings.llm_timeout_sec,
        max_retries=settings.llm_max_retries,
    )
    return build_rubric_scorer(
        client,
        guard_enabled=settings.determinism_guard_enabled,
        runs=settings.determinism_guard_runs,
        spread_threshold=settings.determinism_guard_spread,
    )


def get_storage():
    if not settings.supabase_url or not settings.supabase_service_role_key:
        return None
    return RecordingStorage(settings.supabase_url, settings.supabase_service_role_key, settings.recordings_bucket)


def get_tts() -> TTSService:
    return TTSService(
        api_key=settings.elevenlabs_api_key,
        voice_id=settings.tts_voice_id,
        timeout=settings.tts_timeout_sec,
    )


def get_conversation_agent() -> ConversationAgent:
    return ConversationAgent(
        api_key=settings.openai_api_key,
        model=settings.llm_model,
        timeout=settings.llm_timeout_sec,
        max_retries=settings.llm_max_retries,
    )


def get_session_service(
    db: Session = Depends(get_db),
    prompt_bank: PromptBank = Depends(get_prompt_bank),
) -> AssessmentSessionService:
    return AssessmentSessionService(db, prompt_bank)


def get_orchestrator(
    db: Session = Depends(get_db),
    sessions: AssessmentSessionService = Depends(get_session_service),
    stt=Depends(get_stt),
    pronunciation=Depends(get_pronunciation),
    rubric_scorer=Depends(get_rubric_scorer),
    storage=Depends(get_storage),
) -> RecordingOrchestrator:
    return RecordingOrchestrator(db, stt, pronunciation, rubric_scorer, storage=storage, sessions=sessions)
