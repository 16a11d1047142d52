# oral_exam/services/stt_service.py
import io
import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass, field
from typing import List, Optional

import soundfile as sf
from google.cloud import speech_v1p1beta1 as speech

from oral_exam.services.errors import TranscriptionError
from oral_exam.services.fluency_scoring import WordTiming

logger = logging.getLogger(__name__)


@dataclass
class TranscriptionResult:
    text: str
    words: List[WordTiming] = field(default_factory=list)
    duration: float = 0.0  # seconds


class STTService:
    """Google Cloud Speech with word time offsets; browser audio goes through ffmpeg first."""

    def __init__(self, language: str = "fr-FR", timeout: float = 60.0,
                 ffmpeg_path: str = "ffmpeg", key_path: Optional[str] = None):
        self.language = language
        self.timeout = timeout
        self.ffmpeg_path = ffmpeg_path
        self.key_path = key_path
        self._client = None

    @property
    def client(self):
        if self._client is None:
            if self.key_path:
                os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = self.key_path
            self._client = speech.SpeechClient()
        return self._client

    def transcribe(self, audio_bytes: bytes, language: Optional[str] = None) -> str:
        return self.transcribe_with_words(audio_bytes, language).text

    def transcribe_with_words(self, audio_bytes: bytes, language: Optional[str] = None) -> TranscriptionResult:
        if not audio_bytes:
            raise TranscriptionError("audio is empty")

        wav_bytes = self._convert_to_wav(audio_bytes)
        duration = _wav_duration(wav_bytes)

        config = speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=16000,
            language_code=language or self.language,
            enable_automatic_punctuation=True,
            enable_word_time_offsets=True,
        )
        audio = speech.RecognitionAudio(content=wav_bytes)

        try:
            response = self.client.recognize(config=config, audio=audio, timeout=self.timeout)
        except Exception as e:
            logger.error("[STT] recognize failed: %s", e)
            raise TranscriptionError(f"speech service failed: {e}") from e

        parts: List[str] = []
        words: List[WordTiming] = []
        for result in response.results:
            if not result.alternatives:
                continue
            best = result.alternatives[0]
            parts.append(best.transcript)
            for w in best.words:
                words.append(WordTiming(
                    word=w.word,
                    start=w.start_time.total_seconds(),
                    end=w.end_time.total_seconds(),
                ))

        text = " ".join(p.strip() for p in parts).strip()
        logger.info("[STT] transcribed words=%s duration=%.2fs", len(words), duration)
        return TranscriptionResult(text=text, words=words, duration=duration)

    def _convert_to_wav(self, audio_bytes: bytes) -> bytes:
        return convert_to_wav(audio_bytes, self.ffmpeg_path, self.timeout)


def convert_to_wav(audio_bytes: bytes, ffmpeg_path: str = "ffmpeg", timeout: float = 60.0) -> bytes:
    """WebM/other formats -> 16kHz mono WAV."""
    with tempfile.NamedTemporaryFile(delete=False, suffix=".webm") as input_file:
        input_file.write(audio_bytes)
        input_path = input_file.name

    with tempfile.NamedTemporaryFile(delete=False, suffix=".wav") as output_file:
        output_path = output_file.name

    try:
        subprocess.run(
            [
                ffmpeg_path,
                "-i", input_path,
                "-ar", "16000",  # 16kHz
                "-ac", "1",       # mono
                "-y",
                output_path,
            ],
            check=True,
            capture_output=True,
            timeout=timeout,
        )
        with open(output_path, "rb") as f:
            return f.read()
    except (subprocess.SubprocessError, OSError) as e:
        raise TranscriptionError(f"audio conversion failed: {e}") from e
    finally:
        for path in (input_path, output_path):
            try:
                os.remove(path)
            except OSError:
                pass


def _wav_duration(wav_bytes: bytes) -> float:
    try:
        return float(sf.info(io.BytesIO(wav_bytes)).duration)
    except RuntimeError as e:  # soundfile.LibsndfileError
        raise TranscriptionError(f"malformed audio: {e}") from e
