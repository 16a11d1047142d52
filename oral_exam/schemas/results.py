# oral_exam/schemas/results.py
# per-module result payloads stored in speaking_assessment_items.result_ref
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class FluencyResult(BaseModel):
    kind: Literal["fluency"] = "fluency"
    score: int
    speed_subscore: int
    pause_subscore: int
    metrics: Dict[str, float]
    transcript: str = ""


class PronunciationResult(BaseModel):
    kind: Literal["pronunciation"] = "pronunciation"
    score: float
    accuracy_score: float
    fluency_score: float
    completeness_score: float
    transcript: str = ""
    words: List[Dict[str, Any]] = []
    phonemes: List[Dict[str, Any]] = []


class RubricModuleResult(BaseModel):
    kind: Literal["confidence", "syntax", "conversation", "comprehension"]
    score: float
    transcript: str = ""
    feedback: str = ""
    evidence: List[str] = []
    breakdown: Dict[str, float] = {}
    flags: List[str] = []
    spread: Optional[float] = None
    details: Dict[str, Any] = {}


ModuleResult = Annotated[
    Union[FluencyResult, PronunciationResult, RubricModuleResult],
    Field(discriminator="kind"),
]
