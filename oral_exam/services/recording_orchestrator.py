# oral_exam/services/recording_orchestrator.py
"""
Per-item recording flow shared by every module.

    ready -> countdown -> recording -> uploading -> processing -> done
                                          \\            /
                                            -> error <-

Upstream failures (speech-to-text, pronunciation assessment, rubric scoring,
storage upload) land the item in ``error`` with the message persisted, and so
does any unexpected error while scoring. The learner can submit again; the
session is never failed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from oral_exam.models.assessment_item import AssessmentItem
from oral_exam.models.assessment_session import AssessmentSession, ACTIVE_STATUSES
from oral_exam.models.module_progress import ModuleProgress
from oral_exam.models.skill_recording import SkillRecording
from oral_exam.schemas.results import FluencyResult, PronunciationResult, RubricModuleResult
from oral_exam.services import module_locks
from oral_exam.services.conversation_agent import format_turns
from oral_exam.services.errors import (
    AssessmentError,
    InvalidArgument,
    InvalidTransition,
    RedoNotAllowed,
    RubricScoringError,
    TranscriptionError,
)
from oral_exam.services.fluency_scoring import (
    calculate_fluency_score,
    compute_fluency_metrics,
)
from oral_exam.services.phoneme_stats import extract_phoneme_scores, record_phoneme_scores
from oral_exam.services.rubrics import get_rubric
from oral_exam.services.session_manager import AssessmentSessionService
from oral_exam.services.storage_service import recording_path

logger = logging.getLogger(__name__)

# persisted item status -> UI phase
STATUS_TO_PHASE = {
    "not_started": "ready",
    "recording": "recording",
    "processing": "processing",
    "completed": "done",
    "error": "error",
}
PHASE_TO_STATUS = {
    "ready": "not_started",
    "countdown": "not_started",
    "recording": "recording",
    "uploading": "recording",
    "processing": "processing",
    "done": "completed",
    "error": "error",
}
REDO_ALLOWED = ("not_started", "completed", "error")
UPSTREAM_ERRORS = (TranscriptionError, AssessmentError, RubricScoringError)
# scored from measured audio, never from typed text
AUDIO_ONLY_MODULES = ("fluency", "pronunciation")


@dataclass
class SubmissionOutcome:
    item_id: str
    recording_id: str
    status: str  # completed | error
    attempt_number: int
    result: Optional[Dict[str, Any]] = None
    transcript: str = ""
    module_complete: bool = False
    retryable: bool = False
    error: Optional[str] = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RecordingOrchestrator:
    def __init__(self, db: Session, stt, pronunciation, rubric_scorer, storage=None,
                 sessions: Optional[AssessmentSessionService] = None):
        self.db = db
        self.stt = stt
        self.pronunciation = pronunciation
        self.rubric_scorer = rubric_scorer
        self.storage = storage
        self.sessions = sessions or AssessmentSessionService(db)

    # ------------------------
    # helpers
    # ------------------------
    def _latest_recording(self, item_id: str) -> Optional[SkillRecording]:
        return (
            self.db.query(SkillRecording)
            .filter(SkillRecording.item_id == item_id)
            .order_by(SkillRecording.created_at.desc(), SkillRecording.attempt_number.desc())
            .first()
        )

    def _active_session(self, item: AssessmentItem) -> AssessmentSession:
        session = self.db.get(AssessmentSession, item.session_id)
        if session.status not in ACTIVE_STATUSES:
            raise InvalidTransition(f"session {session.id} is {session.status}")
        if session.status == "created":
            session.status = "in_progress"
            session.started_at = session.started_at or _now()
        return session

    def phase_for(self, item: AssessmentItem) -> str:
        if item.status == "recording":
            latest = self._latest_recording(item.id)
            if latest is not None and latest.status == "uploading" and not latest.superseded:
                return "uploading"
        return STATUS_TO_PHASE[item.status]

    def module_complete(self, session_id: str, module_type: str) -> bool:
        statuses = (
            self.db.query(AssessmentItem.status)
            .filter(AssessmentItem.session_id == session_id, AssessmentItem.module_type == module_type)
            .all()
        )
        return bool(statuses) and all(s == "completed" for (s,) in statuses)

    # ------------------------
    # flow
    # ------------------------
    def start_recording(self, user_id: str, item_id: str) -> AssessmentItem:
        item = self.sessions.get_item(user_id, item_id)
        self._active_session(item)
        if item.status == "recording":
            return item
        if item.status not in ("not_started", "error"):
            raise InvalidTransition(f"item {item_id} is {item.status}; redo it first")
        item.status = "recording"
        self.db.commit()
        return item

    def submit(
        self,
        user_id: str,
        item_id: str,
        audio: Optional[bytes] = None,
        transcript: Optional[str] = None,
        turns: Optional[Sequence[Mapping[str, str]]] = None,
        duration: Optional[float] = None,
        content_type: str = "audio/webm",
    ) -> SubmissionOutcome:
        """
        Score one attempt and persist it.

        Returns an outcome with status "error" (retryable) when an upstream
        service fails. Raises only for caller mistakes.
        """
        item = self.sessions.get_item(user_id, item_id)
        session = self._active_session(item)

        if item.status in ("completed", "processing"):
            raise InvalidTransition(f"item {item_id} is {item.status}")
        if not audio and not transcript and not turns:
            raise InvalidArgument("audio, transcript or turns is required")
        if item.module_type in AUDIO_ONLY_MODULES and not audio:
            raise InvalidArgument(f"{item.module_type} needs audio")

        module_locks.supersede_recordings(self.db, item.id)
        recording = SkillRecording(
            session_id=session.id,
            item_id=item.id,
            user_id=user_id,
            module_type=item.module_type,
            attempt_number=item.attempt_number,
            status="pending",
            superseded=False,
            used_for_scoring=True,
            duration_seconds=duration,
        )
        self.db.add(recording)
        self.db.flush()

        if audio and self.storage is not None:
            recording.status = "uploading"
            item.status = "recording"
            self.db.commit()
            try:
                recording.audio_storage_path = self.storage.upload(
                    recording_path(user_id, session.id, item.id, item.attempt_number), audio, content_type,
                )
            except Exception as e:
                logger.exception("[RECORDING] upload failed item_id=%s", item.id)
                return self._fail(item, recording, f"upload failed: {e}")

        recording.status = "processing"
        item.status = "processing"
        self.db.commit()
        logger.info(
            "[RECORDING] processing item_id=%s module=%s attempt=%s",
            item.id, item.module_type, item.attempt_number,
        )

        try:
            result = self._score(user_id, item, audio, transcript, turns, duration)
        except UPSTREAM_ERRORS as e:
            logger.warning("[RECORDING] scoring failed item_id=%s: %s", item.id, e)
            return self._fail(item, recording, f"{e.code}: {e}")
        except Exception as e:
            logger.exception("[RECORDING] unexpected scoring failure item_id=%s", item.id)
            return self._fail(item, recording, f"scoring failed: {e}")

        payload = result.model_dump()
        item.result_ref = payload
        item.status = "completed"
        recording.transcript = result.transcript
        recording.word_count = len(result.transcript.split()) if result.transcript else 0
        recording.score = float(result.score)
        recording.result = payload
        recording.status = "completed"
        recording.completed_at = _now()
        self.db.commit()

        done = self.module_complete(session.id, item.module_type)
        logger.info("[RECORDING] completed item_id=%s score=%s module_complete=%s", item.id, result.score, done)
        return SubmissionOutcome(
            item_id=item.id,
            recording_id=recording.id,
            status="completed",
            attempt_number=item.attempt_number,
            result=payload,
            transcript=result.transcript,
            module_complete=done,
        )

    def _fail(self, item: AssessmentItem, recording: SkillRecording, message: str) -> SubmissionOutcome:
        # drop partial scoring writes, keep the committed attempt row
        self.db.rollback()
        item.status = "error"
        recording.status = "error"
        recording.error_message = message
        self.db.commit()
        return SubmissionOutcome(
            item_id=item.id,
            recording_id=recording.id,
            status="error",
            attempt_number=item.attempt_number,
            retryable=True,
            error=message,
        )

    # ------------------------
    # scoring per module
    # ------------------------
    def _transcribe(self, audio: Optional[bytes], transcript: Optional[str]) -> str:
        if transcript:
            return transcript.strip()
        text = self.stt.transcribe(audio)
        if not text or not text.strip():
            raise TranscriptionError("no speech detected")
        return text.strip()

    def _score(self, user_id, item, audio, transcript, turns, duration):
        payload = item.prompt_payload.get("payload", {})

        if item.module_type == "fluency":
            tr = self.stt.transcribe_with_words(audio)
            text = (tr.text or "").strip()
            metrics = compute_fluency_metrics(tr.words, tr.duration or duration or 0.0)
            if not text or metrics.word_count == 0:
                raise TranscriptionError("no speech detected")
            score = calculate_fluency_score(metrics)
            return FluencyResult(
                score=score.total,
                speed_subscore=score.speed_subscore,
                pause_subscore=score.pause_subscore,
                metrics=metrics.to_dict(),
                transcript=text,
            )

        if item.module_type == "pronunciation":
            assessment = self.pronunciation.assess(audio, payload.get("text", ""))
            scores = extract_phoneme_scores(assessment.to_dict())
            record_phoneme_scores(self.db, user_id, scores)
            return PronunciationResult(
                score=assessment.overall_score,
                accuracy_score=assessment.accuracy_score,
                fluency_score=assessment.fluency_score,
                completeness_score=assessment.completeness_score,
                transcript=assessment.transcript,
                words=assessment.words,
                phonemes=assessment.phonemes,
            )

        rubric = get_rubric(item.module_type)
        if rubric is None:
            raise InvalidArgument(f"no scorer for module {item.module_type}")

        if item.module_type == "conversation" and turns:
            history: List[Mapping[str, str]] = list(turns)
            if audio or transcript:
                history.append({"role": "user", "content": self._transcribe(audio, transcript)})
            text = format_turns(history)
        else:
            text = self._transcribe(audio, transcript)

        graded = self.rubric_scorer.score_with_rubric(text, rubric, payload)
        return RubricModuleResult(
            kind=item.module_type,
            score=graded.score,
            transcript=text,
            feedback=graded.feedback,
            evidence=graded.evidence,
            breakdown=graded.breakdown,
            flags=graded.flags,
            spread=graded.spread,
            details=graded.details,
        )

    # ------------------------
    # redo / lock
    # ------------------------
    def redo_item(self, user_id: str, item_id: str) -> AssessmentItem:
        """
        Back to ready with attempt_number + 1; the old recording is kept, superseded.

        Raises:
            ModuleLocked: the learner already moved past this module
            RedoNotAllowed: a submission for this item is still in flight
        """
        item = self.sessions.get_item(user_id, item_id)
        self._active_session(item)
        module_locks.ensure_unlocked(self.db, item.session_id, item.module_type)
        if item.status not in REDO_ALLOWED:
            raise RedoNotAllowed(f"item {item_id} is {item.status}")

        module_locks.reset_item(self.db, item)
        self.db.commit()
        logger.info("[RECORDING] redo item_id=%s attempt=%s", item.id, item.attempt_number)
        return item

    def redo_module(self, user_id: str, session_id: str, module_type: str) -> ModuleProgress:
        items = self.sessions.get_module_items(user_id, session_id, module_type)
        if not items:
            raise InvalidArgument(f"{module_type} is not part of session {session_id}")
        self._active_session(items[0])
        try:
            progress = module_locks.reset_module(self.db, session_id, module_type, items)
        except Exception:
            self.db.rollback()
            raise
        self.db.commit()
        return progress

    def lock_module(self, user_id: str, session_id: str, module_type: str) -> ModuleProgress:
        self.sessions.get_session(user_id, session_id)
        items = self.sessions.get_module_items(user_id, session_id, module_type)
        if not items:
            raise InvalidArgument(f"{module_type} is not part of session {session_id}")
        progress = module_locks.lock_module(self.db, session_id, module_type)
        self.db.commit()
        return progress
