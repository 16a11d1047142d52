# oral_exam/services/pronunciation_service.py
"""
Azure Speech pronunciation assessment over REST.

Reference text + learner audio -> overall score with per-word and
per-phoneme (IPA) accuracy.
"""
import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from oral_exam.services.errors import AssessmentError, TranscriptionError
from oral_exam.services.stt_service import convert_to_wav

logger = logging.getLogger(__name__)

ENDPOINT = "https://{region}.stt.speech.microsoft.com/speech/recognition/conversation/cognitiveservices/v1"


@dataclass
class PronunciationAssessment:
    overall_score: float
    accuracy_score: float
    fluency_score: float
    completeness_score: float
    words: List[Dict[str, Any]] = field(default_factory=list)
    phonemes: List[Dict[str, Any]] = field(default_factory=list)
    transcript: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "accuracy_score": self.accuracy_score,
            "fluency_score": self.fluency_score,
            "completeness_score": self.completeness_score,
            "transcript": self.transcript,
            "words": self.words,
            "phonemes": self.phonemes,
            "all_phonemes": [
                {"phoneme": p["phoneme"], "score": p["accuracy_score"]} for p in self.phonemes
            ],
        }


def parse_azure_response(result: Dict[str, Any]) -> PronunciationAssessment:
    n_best = (result.get("NBest") or [None])[0]
    if not n_best:
        raise AssessmentError("no pronunciation assessment result")

    assessment = n_best.get("PronunciationAssessment") or {}
    words: List[Dict[str, Any]] = []
    phonemes: List[Dict[str, Any]] = []

    for word in n_best.get("Words") or []:
        wa = word.get("PronunciationAssessment") or {}
        words.append({
            "word": word.get("Word", ""),
            "accuracy_score": wa.get("AccuracyScore") or 0,
            "error_type": wa.get("ErrorType") or "None",
        })
        for phoneme in word.get("Phonemes") or []:
            pa = phoneme.get("PronunciationAssessment") or {}
            phonemes.append({
                "phoneme": phoneme.get("Phoneme", ""),
                "accuracy_score": pa.get("AccuracyScore") or 0,
            })

    return PronunciationAssessment(
        overall_score=assessment.get("PronScore") or 0,
        accuracy_score=assessment.get("AccuracyScore") or 0,
        fluency_score=assessment.get("FluencyScore") or 0,
        completeness_score=assessment.get("CompletenessScore") or 0,
        words=words,
        phonemes=phonemes,
        transcript=n_best.get("Display") or result.get("DisplayText") or "",
    )


class PronunciationService:
    def __init__(self, key: Optional[str], region: Optional[str], language: str = "fr-FR",
                 timeout: float = 30.0, ffmpeg_path: str = "ffmpeg"):
        self.key = key
        self.region = region
        self.language = language
        self.timeout = timeout
        self.ffmpeg_path = ffmpeg_path

    def assess(self, audio_bytes: bytes, reference_text: str) -> PronunciationAssessment:
        """
        Raises:
            AssessmentError: missing credentials, bad audio or upstream failure
        """
        if not self.key or not self.region:
            raise AssessmentError("Azure Speech credentials not configured")
        if not reference_text:
            raise AssessmentError("no reference text provided")

        try:
            wav_bytes = convert_to_wav(audio_bytes, self.ffmpeg_path, self.timeout)
        except TranscriptionError as e:
            raise AssessmentError(str(e)) from e

        config = {
            "referenceText": reference_text,
            "gradingSystem": "HundredMark",
            "granularity": "Phoneme",
            "enableMiscue": True,
            "phonemeAlphabet": "IPA",
        }
        headers = {
            "Ocp-Apim-Subscription-Key": self.key,
            "Content-Type": "audio/wav; codecs=audio/pcm; samplerate=16000",
            "Pronunciation-Assessment": base64.b64encode(json.dumps(config).encode("utf-8")).decode("ascii"),
            "Accept": "application/json",
        }

        try:
            resp = requests.post(
                ENDPOINT.format(region=self.region),
                params={"language": self.language},
                headers=headers,
                data=wav_bytes,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            result = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("[PRONUNCIATION] Azure call failed: %s", e)
            raise AssessmentError(f"pronunciation service failed: {e}") from e

        parsed = parse_azure_response(result)
        logger.info(
            "[PRONUNCIATION] score=%s words=%s phonemes=%s",
            parsed.overall_score, len(parsed.words), len(parsed.phonemes),
        )
        return parsed
