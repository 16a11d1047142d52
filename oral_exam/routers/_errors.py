# oral_exam/routers/_errors.py
# domain error -> HTTPException, detail = {"message": <code>, "detail": <text>}
from fastapi import HTTPException, status

from oral_exam.services.errors import (
    ActiveSessionExists,
    AssessmentDomainError,
    AssessmentError,
    CooldownActive,
    ExamImmutable,
    ExamNotFound,
    InvalidArgument,
    InvalidTransition,
    ItemNotFound,
    ModuleLocked,
    PromptNotFound,
    RedoNotAllowed,
    RubricScoringError,
    SessionCreationError,
    SessionNotFound,
    SynthesisError,
    TranscriptionError,
)

STATUS_BY_ERROR = (
    (InvalidArgument, status.HTTP_400_BAD_REQUEST),
    ((SessionNotFound, ItemNotFound, ExamNotFound, PromptNotFound), status.HTTP_404_NOT_FOUND),
    ((ActiveSessionExists, InvalidTransition, RedoNotAllowed, ModuleLocked, CooldownActive, ExamImmutable),
     status.HTTP_409_CONFLICT),
    ((TranscriptionError, AssessmentError, RubricScoringError, SynthesisError), status.HTTP_502_BAD_GATEWAY),
    (SessionCreationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def to_http(e: AssessmentDomainError) -> HTTPException:
    code = next(
        (s for types, s in STATUS_BY_ERROR if isinstance(e, types)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    detail = {"message": e.code, "detail": str(e)}
    if isinstance(e, ActiveSessionExists):
        detail["session_id"] = e.session_id
    if isinstance(e, CooldownActive) and e.next_available_at is not None:
        detail["next_available_at"] = e.next_available_at.isoformat()
    return HTTPException(status_code=code, detail=detail)
