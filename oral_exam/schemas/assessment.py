# oral_exam/schemas/assessment.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# -- Request --

class StartSessionRequest(BaseModel):
    mode: Literal["full", "single_module"] = "full"
    module_type: Optional[str] = Field(None, description="required when mode is single_module")


class RestartSessionRequest(BaseModel):
    mode: Optional[Literal["full", "single_module"]] = None
    module_type: Optional[str] = None


class ConversationTurn(BaseModel):
    role: Literal["agent", "user"]
    content: str = Field(..., max_length=2000)


class ConversationTurnRequest(BaseModel):
    history: List[ConversationTurn] = []


class OfficialExamCreate(BaseModel):
    assessment_session_id: Optional[str] = None
    is_official: bool = True


class OfficialExamUpdate(BaseModel):
    scenario_1_id: Optional[str] = None
    scenario_2_id: Optional[str] = None
    scenario_3_id: Optional[str] = None
    persona_1_id: Optional[str] = None
    persona_2_id: Optional[str] = None
    persona_3_id: Optional[str] = None
    tier_1: Optional[int] = Field(None, ge=1, le=3)
    tier_2: Optional[int] = Field(None, ge=1, le=3)
    tier_3: Optional[int] = Field(None, ge=1, le=3)
    conversation_transcript: Optional[List[Dict[str, Any]]] = None
    fluency_score: Optional[float] = Field(None, ge=0, le=100)
    syntax_score: Optional[float] = Field(None, ge=0, le=100)
    conversation_score: Optional[float] = Field(None, ge=0, le=100)
    confidence_score: Optional[float] = Field(None, ge=0, le=100)
    overall_score: Optional[float] = Field(None, ge=0, le=100)
    proficiency_level: Optional[str] = Field(None, max_length=10)
    duration_seconds: Optional[int] = Field(None, ge=0)
    trace_id: Optional[str] = Field(None, max_length=64)


class TTSRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)
    voice_id: Optional[str] = None
    speed: float = Field(0.9, ge=0.5, le=1.5)
    stability: float = Field(0.6, ge=0.0, le=1.0)


# -- Response --

class ItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    module_type: str
    item_index: int
    prompt_id: str
    prompt_payload: Dict[str, Any]
    status: str
    attempt_number: int
    result_ref: Optional[Dict[str, Any]] = None


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    mode: str
    module_type: Optional[str] = None
    status: str
    seed: int
    prompt_versions: Dict[str, str]
    scorer_version: Optional[str] = None
    asr_version: Optional[str] = None
    current_module: Optional[str] = None
    current_item_index: Optional[int] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class SessionStateOut(BaseModel):
    session: SessionOut
    items: List[ItemOut]
    current_item: Optional[ItemOut] = None
    resumed: bool = False


class ItemPhaseOut(BaseModel):
    item: ItemOut
    phase: str


class SubmissionOut(BaseModel):
    item_id: str
    recording_id: str
    status: str
    attempt_number: int
    result: Optional[Dict[str, Any]] = None
    transcript: str = ""
    module_complete: bool = False
    retryable: bool = False
    error: Optional[str] = None


class ModuleProgressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: str
    module_type: str
    attempt_number: int
    locked: bool
    locked_at: Optional[datetime] = None


class AgentTurnOut(BaseModel):
    role: Literal["agent"] = "agent"
    content: str


class PhonemeStatOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    phoneme: str
    attempts: int
    mean_accuracy: float
    confidence: float
    last_tested_at: Optional[datetime] = None


class PhonemeCoverageOut(BaseModel):
    tested: int
    total: int
    percentage: int


class PhonemeSummaryOut(BaseModel):
    hardest: List[PhonemeStatOut]
    uncertain: List[PhonemeStatOut]
    strongest: List[PhonemeStatOut]
    coverage: PhonemeCoverageOut


class RetryStatusOut(BaseModel):
    can_take_official: bool
    next_available_at: Optional[datetime] = None
    last_official_exam_at: Optional[datetime] = None
    days_until_next: int
    total_official_exams: int
    message: str


class OfficialExamOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    assessment_session_id: Optional[str] = None
    is_official: bool
    scenario_1_id: str
    scenario_2_id: str
    scenario_3_id: str
    persona_1_id: str
    persona_2_id: str
    persona_3_id: str
    tier_1: int
    tier_2: int
    tier_3: int
    conversation_transcript: List[Dict[str, Any]] = []
    fluency_score: Optional[float] = None
    syntax_score: Optional[float] = None
    conversation_score: Optional[float] = None
    confidence_score: Optional[float] = None
    overall_score: Optional[float] = None
    proficiency_level: Optional[str] = None
    duration_seconds: Optional[int] = None
    trace_id: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
