# oral_exam/services/errors.py
"""
Domain errors raised by the assessment services.

Routers translate these into HTTPException (see routers/_errors.py).
Upstream failures (transcription, pronunciation assessment, rubric scoring)
are transient; the recording orchestrator turns them into an item-level
error state instead of letting them fail the session.
"""
from datetime import datetime


class AssessmentDomainError(Exception):
    code = "assessment_error"


class InvalidArgument(AssessmentDomainError, ValueError):
    code = "invalid_argument"


# ------------------------
# upstream (transient)
# ------------------------
class TranscriptionError(AssessmentDomainError):
    code = "transcription_failed"


class AssessmentError(AssessmentDomainError):
    code = "assessment_failed"


class RubricScoringError(AssessmentDomainError):
    code = "rubric_scoring_failed"


class SynthesisError(AssessmentDomainError):
    code = "synthesis_failed"


# ------------------------
# lookups
# ------------------------
class SessionNotFound(AssessmentDomainError):
    code = "session_not_found"


class ItemNotFound(AssessmentDomainError):
    code = "item_not_found"


class ExamNotFound(AssessmentDomainError):
    code = "exam_not_found"


class PromptNotFound(AssessmentDomainError, KeyError):
    code = "prompt_not_found"

    def __str__(self):
        return Exception.__str__(self)


# ------------------------
# state conflicts
# ------------------------
class ActiveSessionExists(AssessmentDomainError):
    code = "active_session_exists"

    def __init__(self, session_id: str | None = None):
        super().__init__(f"user already has an unfinished session: {session_id}")
        self.session_id = session_id


class SessionCreationError(AssessmentDomainError):
    code = "session_creation_failed"


class InvalidTransition(AssessmentDomainError):
    code = "invalid_transition"


class RedoNotAllowed(AssessmentDomainError):
    code = "redo_not_allowed"


class ModuleLocked(AssessmentDomainError):
    code = "module_locked"


class CooldownActive(AssessmentDomainError):
    code = "cooldown_active"

    def __init__(self, next_available_at: datetime | None):
        super().__init__(f"official exam available again at {next_available_at}")
        self.next_available_at = next_available_at


class ExamImmutable(AssessmentDomainError):
    code = "exam_immutable"
