# oral_exam/services/tts_service.py
import logging
from typing import Optional

import requests

from oral_exam.services.errors import InvalidArgument, SynthesisError

logger = logging.getLogger(__name__)

ELEVENLABS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
DEFAULT_VOICE_ID = "FGY2WhTYpPnrIDTdsKH5"  # neutral French voice
MODEL_ID = "eleven_multilingual_v2"


class TTSService:
    """Reference audio for prompts (ElevenLabs). Not used for scoring."""

    def __init__(self, api_key: Optional[str], voice_id: str = DEFAULT_VOICE_ID, timeout: float = 30.0):
        self.api_key = api_key
        self.voice_id = voice_id
        self.timeout = timeout

    def synthesize(self, text: str, voice_id: Optional[str] = None,
                   speed: float = 0.9, stability: float = 0.6) -> bytes:
        if not text or not text.strip():
            raise InvalidArgument("text is required")
        if not self.api_key:
            raise SynthesisError("ElevenLabs API key not configured")

        selected = voice_id or self.voice_id
        logger.info("[TTS] voice_id=%s speed=%s stability=%s chars=%s", selected, speed, stability, len(text))

        try:
            resp = requests.post(
                ELEVENLABS_URL.format(voice_id=selected),
                params={"output_format": "mp3_44100_128"},
                headers={
                    "xi-api-key": self.api_key,
                    "Content-Type": "application/json",
                    "Accept": "audio/mpeg",
                },
                json={
                    "text": text,
                    "model_id": MODEL_ID,
                    "voice_settings": {
                        "stability": stability,
                        "similarity_boost": 0.75,
                        "style": 0.3,
                        "use_speaker_boost": True,
                        "speed": speed,
                    },
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error("[TTS] ElevenLabs call failed: %s", e)
            raise SynthesisError(f"tts failed: {e}") from e

        return resp.content
