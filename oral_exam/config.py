# oral_exam/config.py


from dotenv import load_dotenv
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()  # .env first, then the process environment

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    # environment
    app_env: str = "local"
    log_level: str = "INFO"

    # database
    database_url: str = "sqlite:///./oral_exam.db"  # DATABASE_URL

    # Supabase (storage + auth)
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None
    supabase_jwt_secret: str | None = None
    recordings_bucket: str = "recordings"

    # OpenAI (rubric scoring, conversation partner)
    openai_api_key: str | None = None
    llm_model: str = "gpt-4o-mini"
    llm_timeout_sec: float = 30.0
    llm_max_retries: int = 1

    # determinism guard is opt-in; passed explicitly to build_rubric_scorer
    determinism_guard_enabled: bool = False
    determinism_guard_runs: int = 3
    determinism_guard_spread: float = 5.0

    # Google STT
    google_stt_key_path: str | None = None
    stt_language: str = "fr-FR"
    stt_timeout_sec: float = 60.0
    ffmpeg_path: str = "ffmpeg"

    # Azure pronunciation assessment
    azure_speech_key: str | None = None
    azure_speech_region: str | None = None
    assessment_timeout_sec: float = 30.0

    # ElevenLabs TTS
    elevenlabs_api_key: str | None = None
    tts_voice_id: str = "FGY2WhTYpPnrIDTdsKH5"
    tts_timeout_sec: float = 30.0

    # official exam policy
    official_cooldown_days: int = 14

    # frozen onto every new session
    scorer_version: str = "2026-01-04"
    asr_version: str = "google-speech-v1p1beta1"

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
