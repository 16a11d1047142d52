import itertools
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from oral_exam.db.base import Base
import oral_exam.db.models  # noqa: F401
from oral_exam.services.errors import TranscriptionError
from oral_exam.services.fluency_scoring import WordTiming
from oral_exam.services.prompt_bank import PromptBank
from oral_exam.services.pronunciation_service import PronunciationAssessment
from oral_exam.services.rubric_scoring import RubricScorer
from oral_exam.services.session_manager import AssessmentSessionService
from oral_exam.services.stt_service import TranscriptionResult

USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="session")
def prompt_bank():
    return PromptBank()


@pytest.fixture
def sessions(db, prompt_bank):
    return AssessmentSessionService(db, prompt_bank)


# ------------------------
# fakes for upstream services
# ------------------------
class FakeSTT:
    def __init__(self, text="Bonjour je suis allé au marché hier avec ma soeur", fail=False):
        self.text = text
        self.fail = fail
        self.calls = 0

    def transcribe(self, audio_bytes, language=None):
        self.calls += 1
        if self.fail:
            raise TranscriptionError("speech api unavailable")
        return self.text

    def transcribe_with_words(self, audio_bytes, language=None):
        self.calls += 1
        if self.fail:
            raise TranscriptionError("speech api unavailable")
        words = [WordTiming(w, i * 0.5, i * 0.5 + 0.4) for i, w in enumerate(self.text.split())]
        return TranscriptionResult(text=self.text, words=words, duration=len(words) * 0.5)


class FakePronunciation:
    def __init__(self, phonemes=None, fail=False):
        self.phonemes = phonemes if phonemes is not None else [
            {"phoneme": "y", "accuracy_score": 60.0},
            {"phoneme": "u", "accuracy_score": 90.0},
            {"phoneme": "r", "accuracy_score": 70.0},
        ]
        self.fail = fail

    def assess(self, audio_bytes, reference_text):
        if self.fail:
            raise TranscriptionError("could not decode audio")
        return PronunciationAssessment(
            overall_score=78.0,
            accuracy_score=80.0,
            fluency_score=75.0,
            completeness_score=100.0,
            words=[{"word": "bu", "accuracy_score": 60.0, "error_type": "None"}],
            phonemes=list(self.phonemes),
            transcript=reference_text,
        )


class FakeRubricClient:
    """Returns the given responses in turn; the last one repeats."""

    def __init__(self, *responses):
        self.responses = list(responses) or [{"total_score": 70, "feedback": "ok"}]
        self._index = itertools.count()
        self._lock = threading.Lock()
        self.calls = []

    def evaluate(self, system_prompt, user_content, temperature=0.2):
        with self._lock:
            n = next(self._index)
            self.calls.append({"user_content": user_content, "temperature": temperature})
        return dict(self.responses[min(n, len(self.responses) - 1)])


class FakeStorage:
    def __init__(self, fail=False):
        self.fail = fail
        self.uploads = {}

    def upload(self, dest_path, data, content_type="audio/webm"):
        if self.fail:
            raise RuntimeError("bucket unavailable")
        self.uploads[dest_path] = data
        return dest_path


@pytest.fixture
def fake_stt():
    return FakeSTT()


@pytest.fixture
def fake_pronunciation():
    return FakePronunciation()


@pytest.fixture
def rubric_client():
    return FakeRubricClient({
        "total_score": 72,
        "breakdown": {"length_development": 20, "assertiveness": 18},
        "evidence": ["Moi je pense"],
        "feedback": "Good energy.",
    })


@pytest.fixture
def rubric_scorer(rubric_client):
    return RubricScorer(rubric_client)
