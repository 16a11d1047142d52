# oral_exam/schemas/prompt.py
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Prompt(BaseModel):
    id: str
    type: str
    tags: List[str] = []
    difficulty: int = Field(ge=1, le=5)
    cefr: Optional[str] = None
    payload: Dict[str, Any]


class PromptCatalog(BaseModel):
    version: str
    module: str
    prompts: List[Prompt]
    meta: Dict[str, Any] = {}
