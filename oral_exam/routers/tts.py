# oral_exam/routers/tts.py
from fastapi import APIRouter, Depends
from fastapi.responses import Response

from oral_exam.deps import get_current_user, get_tts
from oral_exam.routers._errors import to_http
from oral_exam.schemas.assessment import TTSRequest
from oral_exam.services.errors import AssessmentDomainError
from oral_exam.services.tts_service import TTSService

router = APIRouter(prefix="/api/tts", tags=["tts"])


@router.post("", response_class=Response)
def synthesize(
    payload: TTSRequest,
    tts: TTSService = Depends(get_tts),
    current_user: dict = Depends(get_current_user),
):
    """Reference audio for a prompt (mp3)."""
    try:
        audio = tts.synthesize(payload.text, payload.voice_id, speed=payload.speed, stability=payload.stability)
    except AssessmentDomainError as e:
        raise to_http(e)
    return Response(content=audio, media_type="audio/mpeg")
