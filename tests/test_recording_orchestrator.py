import pytest

from oral_exam.models.assessment_item import AssessmentItem
from oral_exam.models.module_progress import ModuleProgress
from oral_exam.models.phoneme_stat import UserPhonemeStat
from oral_exam.models.skill_recording import SkillRecording
from oral_exam.services.errors import InvalidArgument, InvalidTransition, ModuleLocked, RedoNotAllowed
from oral_exam.services.recording_orchestrator import RecordingOrchestrator
from oral_exam.services.rubric_scoring import RubricScorer

from conftest import FakePronunciation, FakeRubricClient, FakeSTT, FakeStorage, USER_ID

AUDIO = b"RIFF....fake-webm-bytes"


@pytest.fixture
def orchestrator(db, sessions, fake_stt, fake_pronunciation, rubric_scorer):
    return RecordingOrchestrator(db, fake_stt, fake_pronunciation, rubric_scorer, sessions=sessions)


def _single(sessions, module):
    return sessions.create_session(USER_ID, "single_module", module)


def _recordings(db, item_id):
    return db.query(SkillRecording).filter_by(item_id=item_id).order_by(SkillRecording.attempt_number).all()


def test_start_recording_moves_session_and_item(orchestrator, sessions):
    state = _single(sessions, "confidence")
    item = orchestrator.start_recording(USER_ID, state.items[0].id)

    assert item.status == "recording"
    assert state.session.status == "in_progress"
    assert orchestrator.phase_for(item) == "recording"
    # already recording: no-op
    assert orchestrator.start_recording(USER_ID, item.id).status == "recording"


def test_rubric_module_submit(orchestrator, sessions, db):
    state = _single(sessions, "confidence")
    item = state.items[0]

    outcome = orchestrator.submit(USER_ID, item.id, audio=AUDIO)

    assert outcome.status == "completed"
    assert outcome.result["kind"] == "confidence"
    assert outcome.result["score"] == 72
    assert outcome.result["breakdown"]["length_development"] == 20
    assert outcome.module_complete is False
    assert item.status == "completed"
    assert item.result_ref["transcript"] == outcome.transcript

    recording = _recordings(db, item.id)[0]
    assert recording.status == "completed"
    assert recording.score == 72
    assert recording.word_count == len(outcome.transcript.split())
    assert recording.completed_at is not None


def test_text_submission_skips_stt(orchestrator, sessions, fake_stt):
    state = _single(sessions, "syntax")
    outcome = orchestrator.submit(USER_ID, state.items[0].id, transcript="  J'ai mangé une pomme.  ")
    assert outcome.transcript == "J'ai mangé une pomme."
    assert fake_stt.calls == 0


def test_fluency_submit_uses_word_timings(orchestrator, sessions):
    state = _single(sessions, "fluency")
    outcome = orchestrator.submit(USER_ID, state.items[0].id, audio=AUDIO)

    result = outcome.result
    assert result["kind"] == "fluency"
    assert result["score"] == result["speed_subscore"] + result["pause_subscore"]
    assert result["metrics"]["word_count"] == 10


def test_fluency_needs_audio(orchestrator, sessions, fake_stt):
    state = _single(sessions, "fluency")
    with pytest.raises(InvalidArgument):
        orchestrator.submit(USER_ID, state.items[0].id, transcript="un deux trois quatre", duration=3.0)
    assert state.items[0].status == "not_started"
    assert fake_stt.calls == 0


def test_pronunciation_submit_updates_phoneme_stats(orchestrator, sessions, db):
    state = _single(sessions, "pronunciation")
    outcome = orchestrator.submit(USER_ID, state.items[0].id, audio=AUDIO)

    assert outcome.result["kind"] == "pronunciation"
    assert outcome.result["score"] == 78.0
    phonemes = {s.phoneme: s for s in db.query(UserPhonemeStat).filter_by(user_id=USER_ID)}
    assert set(phonemes) == {"y", "u", "ʁ"}
    assert phonemes["y"].attempts == 1


def test_pronunciation_needs_audio(orchestrator, sessions):
    state = _single(sessions, "pronunciation")
    with pytest.raises(InvalidArgument):
        orchestrator.submit(USER_ID, state.items[0].id, transcript="bonjour")


def test_submit_needs_some_input(orchestrator, sessions):
    state = _single(sessions, "confidence")
    with pytest.raises(InvalidArgument):
        orchestrator.submit(USER_ID, state.items[0].id)


def test_transcription_failure_is_item_level_and_retryable(db, sessions, rubric_scorer):
    stt = FakeSTT(fail=True)
    orchestrator = RecordingOrchestrator(db, stt, FakePronunciation(), rubric_scorer, sessions=sessions)
    state = _single(sessions, "confidence")
    item = state.items[0]

    outcome = orchestrator.submit(USER_ID, item.id, audio=AUDIO)

    assert outcome.status == "error"
    assert outcome.retryable
    assert "transcription_failed" in outcome.error
    assert item.status == "error"
    assert state.session.status == "in_progress"
    assert _recordings(db, item.id)[0].error_message == outcome.error

    # retry from error without redo
    stt.fail = False
    retry = orchestrator.submit(USER_ID, item.id, audio=AUDIO)
    assert retry.status == "completed"
    rows = _recordings(db, item.id)
    assert len(rows) == 2
    assert [r.superseded for r in rows].count(False) == 1


def test_empty_transcript_is_an_error(db, sessions, rubric_scorer):
    orchestrator = RecordingOrchestrator(db, FakeSTT(text="   "), FakePronunciation(), rubric_scorer, sessions=sessions)
    state = _single(sessions, "syntax")
    outcome = orchestrator.submit(USER_ID, state.items[0].id, audio=AUDIO)
    assert outcome.status == "error"
    assert "no speech detected" in outcome.error


def test_silent_fluency_recording_is_an_error(db, sessions, rubric_scorer):
    orchestrator = RecordingOrchestrator(db, FakeSTT(text=""), FakePronunciation(), rubric_scorer, sessions=sessions)
    state = _single(sessions, "fluency")
    item = state.items[0]

    outcome = orchestrator.submit(USER_ID, item.id, audio=AUDIO)

    assert outcome.status == "error"
    assert outcome.retryable
    assert "no speech detected" in outcome.error
    assert item.status == "error"
    assert item.result_ref is None


def test_fluency_fillers_only_is_an_error(db, sessions, rubric_scorer):
    orchestrator = RecordingOrchestrator(db, FakeSTT(text="euh hmm euh"), FakePronunciation(), rubric_scorer,
                                         sessions=sessions)
    state = _single(sessions, "fluency")
    outcome = orchestrator.submit(USER_ID, state.items[0].id, audio=AUDIO)
    assert outcome.status == "error"
    assert "no speech detected" in outcome.error


class BrokenPronunciation(FakePronunciation):
    def assess(self, audio_bytes, reference_text):
        raise RuntimeError("unexpected payload shape")


def test_unexpected_scoring_error_leaves_item_retryable(db, sessions, rubric_scorer):
    pronunciation = BrokenPronunciation()
    orchestrator = RecordingOrchestrator(db, FakeSTT(), pronunciation, rubric_scorer, sessions=sessions)
    state = _single(sessions, "pronunciation")
    item = state.items[0]

    outcome = orchestrator.submit(USER_ID, item.id, audio=AUDIO)

    assert outcome.status == "error"
    assert outcome.retryable
    assert "unexpected payload shape" in outcome.error
    assert item.status == "error"
    assert _recordings(db, item.id)[0].status == "error"

    # both ways out of error stay open
    redone = orchestrator.redo_item(USER_ID, item.id)
    assert redone.status == "not_started"
    orchestrator.pronunciation = FakePronunciation()
    assert orchestrator.submit(USER_ID, item.id, audio=AUDIO).status == "completed"


def test_pronunciation_failure_rolls_back_nothing_recorded(db, sessions, rubric_scorer):
    orchestrator = RecordingOrchestrator(db, FakeSTT(), FakePronunciation(fail=True), rubric_scorer, sessions=sessions)
    state = _single(sessions, "pronunciation")
    outcome = orchestrator.submit(USER_ID, state.items[0].id, audio=AUDIO)
    assert outcome.status == "error"
    assert db.query(UserPhonemeStat).count() == 0


def test_rubric_failure_is_retryable(db, sessions, fake_stt):
    scorer = RubricScorer(FakeRubricClient({"feedback": "no score here"}))
    orchestrator = RecordingOrchestrator(db, fake_stt, FakePronunciation(), scorer, sessions=sessions)
    state = _single(sessions, "confidence")
    outcome = orchestrator.submit(USER_ID, state.items[0].id, transcript="Moi je pense que oui")
    assert outcome.status == "error"
    assert "rubric_scoring_failed" in outcome.error


def test_storage_upload_and_failure(db, sessions, fake_stt, fake_pronunciation, rubric_scorer):
    storage = FakeStorage()
    orchestrator = RecordingOrchestrator(db, fake_stt, fake_pronunciation, rubric_scorer,
                                         storage=storage, sessions=sessions)
    state = _single(sessions, "confidence")
    first, second = state.items

    orchestrator.submit(USER_ID, first.id, audio=AUDIO)
    path = _recordings(db, first.id)[0].audio_storage_path
    assert path.endswith(f"{first.id}/attempt-1.webm")
    assert storage.uploads[path] == AUDIO

    storage.fail = True
    outcome = orchestrator.submit(USER_ID, second.id, audio=AUDIO)
    assert outcome.status == "error"
    assert outcome.error.startswith("upload failed")


def test_conversation_turns_are_scored_together(orchestrator, sessions, rubric_client):
    state = _single(sessions, "conversation")
    turns = [
        {"role": "agent", "content": "Bonjour, je peux vous aider ?"},
        {"role": "user", "content": "Oui, je cherche la gare."},
    ]
    outcome = orchestrator.submit(USER_ID, state.items[0].id, audio=AUDIO, turns=turns)

    assert outcome.status == "completed"
    assert outcome.transcript.startswith("Agent: Bonjour")
    assert outcome.transcript.count("User:") == 2


def test_completed_item_cannot_be_resubmitted(orchestrator, sessions):
    state = _single(sessions, "confidence")
    orchestrator.submit(USER_ID, state.items[0].id, transcript="Franchement j'adore")
    with pytest.raises(InvalidTransition):
        orchestrator.submit(USER_ID, state.items[0].id, transcript="encore")
    with pytest.raises(InvalidTransition):
        orchestrator.start_recording(USER_ID, state.items[0].id)


def test_module_complete_flag(orchestrator, sessions):
    state = _single(sessions, "confidence")
    orchestrator.submit(USER_ID, state.items[0].id, transcript="un")
    outcome = orchestrator.submit(USER_ID, state.items[1].id, transcript="deux")
    assert outcome.module_complete is True


def test_redo_item_bumps_attempt_and_supersedes(orchestrator, sessions, db):
    state = _single(sessions, "confidence")
    item = state.items[0]
    orchestrator.submit(USER_ID, item.id, transcript="Moi je pense que oui")

    redone = orchestrator.redo_item(USER_ID, item.id)
    assert redone.status == "not_started"
    assert redone.attempt_number == 2
    assert redone.result_ref is None
    assert orchestrator.phase_for(redone) == "ready"

    old = _recordings(db, item.id)[0]
    assert old.superseded and not old.used_for_scoring

    orchestrator.submit(USER_ID, item.id, transcript="Franchement oui")
    rows = _recordings(db, item.id)
    assert [r.attempt_number for r in rows] == [1, 2]
    assert rows[1].used_for_scoring


def test_redo_rejected_while_in_flight(orchestrator, sessions):
    state = _single(sessions, "confidence")
    orchestrator.start_recording(USER_ID, state.items[0].id)
    with pytest.raises(RedoNotAllowed):
        orchestrator.redo_item(USER_ID, state.items[0].id)


def test_locked_module_refuses_redo(orchestrator, sessions, db):
    state = _single(sessions, "confidence")
    item = state.items[0]
    orchestrator.submit(USER_ID, item.id, transcript="Moi je pense")

    orchestrator.lock_module(USER_ID, state.session.id, "confidence")
    # idempotent
    progress = orchestrator.lock_module(USER_ID, state.session.id, "confidence")
    assert progress.locked

    with pytest.raises(ModuleLocked):
        orchestrator.redo_item(USER_ID, item.id)
    with pytest.raises(ModuleLocked):
        orchestrator.redo_module(USER_ID, state.session.id, "confidence")


def test_redo_module(orchestrator, sessions, db):
    state = _single(sessions, "confidence")
    for item in state.items:
        orchestrator.submit(USER_ID, item.id, transcript="Oui")

    progress = orchestrator.redo_module(USER_ID, state.session.id, "confidence")
    assert progress.attempt_number == 2
    items = db.query(AssessmentItem).filter_by(session_id=state.session.id).all()
    assert {i.status for i in items} == {"not_started"}
    assert {i.attempt_number for i in items} == {2}


def test_submit_on_abandoned_session(orchestrator, sessions):
    state = _single(sessions, "confidence")
    sessions.abandon_session(USER_ID, state.session.id)
    with pytest.raises(InvalidTransition):
        orchestrator.submit(USER_ID, state.items[0].id, transcript="Oui")


def test_lock_module_not_in_session(orchestrator, sessions, db):
    state = _single(sessions, "confidence")
    with pytest.raises(InvalidArgument):
        orchestrator.lock_module(USER_ID, state.session.id, "syntax")
    assert db.query(ModuleProgress).filter_by(session_id=state.session.id, module_type="syntax").count() == 0
