# oral_exam/services/rubric_scoring.py
"""
LLM rubric scoring.

RubricScorer makes one call and clamps the answer into the rubric's bounds.
DeterminismGuard wraps a scorer, runs it several times and, when the runs
disagree by more than the allowed spread, keeps the median run in full.
"""
import copy
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Mapping, Optional

from openai import OpenAI

from oral_exam.services.errors import InvalidArgument, RubricScoringError
from oral_exam.services.rubrics import RubricDefinition

logger = logging.getLogger(__name__)

MODEL_NAME = "gpt-4o-mini"
UNSTABLE_FLAG = "unstable_scoring"
SCORE_KEYS = ("total_score", "overall", "score")


@dataclass
class RubricResult:
    score: float
    evidence: List[str] = field(default_factory=list)
    feedback: str = ""
    breakdown: Dict[str, float] = field(default_factory=dict)
    flags: List[str] = field(default_factory=list)
    spread: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)  # module-specific extras (errors_top3, intent_match, ...)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ------------------------
# OpenAI transport
# ------------------------
class OpenAIRubricClient:
    """evaluate(system_prompt, user_content) -> parsed JSON object."""

    def __init__(self, api_key: Optional[str] = None, model: str = MODEL_NAME,
                 timeout: float = 30.0, max_retries: int = 1):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self._client: Optional[OpenAI] = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=self.max_retries)
        return self._client

    def complete_json(self, messages: List[Dict[str, str]], temperature: float = 0.2) -> Dict[str, Any]:
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                response_format={"type": "json_object"},
                temperature=temperature,
                messages=messages,
            )
            content = completion.choices[0].message.content
            data = json.loads(content)
        except Exception as e:
            raise RubricScoringError(f"LLM call failed: {e}") from e

        if not isinstance(data, dict):
            raise RubricScoringError("LLM did not return a JSON object")
        return data

    def evaluate(self, system_prompt: str, user_content: str, temperature: float = 0.2) -> Dict[str, Any]:
        return self.complete_json(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            temperature=temperature,
        )


# ------------------------
# single run
# ------------------------
def _clamp(value: Any, lo: float, hi: float) -> float:
    try:
        x = float(value)
    except (TypeError, ValueError):
        return lo
    if x != x:  # NaN
        return lo
    return min(hi, max(lo, x))


def normalize_rubric_output(raw: Mapping[str, Any], rubric: RubricDefinition) -> RubricResult:
    """Map any of the model's answer shapes onto a clamped RubricResult."""
    total = next((raw[k] for k in SCORE_KEYS if raw.get(k) is not None), None)

    breakdown: Dict[str, float] = {}
    raw_evidence = raw.get("evidence") or []
    if isinstance(raw_evidence, str):
        raw_evidence = [raw_evidence]
    evidence: List[str] = [str(e) for e in raw_evidence if e]

    subs = raw.get("subs")
    if isinstance(subs, Mapping):
        for name, sub in subs.items():
            if isinstance(sub, Mapping):
                breakdown[name] = sub.get("score")
                evidence.extend(str(e) for e in sub.get("evidence", []) if e)
            else:
                breakdown[name] = sub
    elif isinstance(raw.get("breakdown"), Mapping):
        breakdown.update(raw["breakdown"])

    for fact in raw.get("understood_facts", []) or []:
        if isinstance(fact, Mapping) and fact.get("evidence"):
            evidence.append(str(fact["evidence"]))

    clamped = {
        name: _clamp(value, 0, rubric.subscore_bounds.get(name, rubric.max_score))
        for name, value in breakdown.items()
    }

    if total is None:
        if not clamped:
            raise RubricScoringError(f"{rubric.module}: model returned no score")
        total = sum(clamped.values())

    feedback = next((str(raw[k]) for k in rubric.feedback_keys if raw.get(k)), "")
    flags = [str(f) for f in raw.get("flags", []) or []]
    details = {
        k: raw[k]
        for k in ("errors_top3", "understood_facts", "intent_match", "confidence")
        if k in raw
    }

    return RubricResult(
        score=_clamp(total, 0, rubric.max_score),
        evidence=evidence,
        feedback=feedback,
        breakdown=clamped,
        flags=flags,
        details=details,
    )


class RubricScorer:
    def __init__(self, client):
        self.client = client

    def score_with_rubric(self, transcript: str, rubric: RubricDefinition,
                          prompt: Optional[Mapping[str, Any]] = None) -> RubricResult:
        user_content = rubric.build_user_content(transcript, prompt or {})
        raw = self.client.evaluate(rubric.system_prompt, user_content, temperature=rubric.temperature)
        result = normalize_rubric_output(raw, rubric)
        logger.info("[RUBRIC] module=%s score=%s", rubric.module, result.score)
        return result


# ------------------------
# determinism guard
# ------------------------
def select_trusted(results: List[RubricResult], spread_threshold: float) -> RubricResult:
    """
    First run when the runs agree; otherwise the median-scoring run, flagged.
    """
    if not results:
        raise InvalidArgument("no results to select from")

    scores = [r.score for r in results]
    spread = max(scores) - min(scores)

    if spread > spread_threshold:
        ranked = sorted(range(len(results)), key=lambda i: (scores[i], i))
        chosen = copy.deepcopy(results[ranked[(len(ranked) - 1) // 2]])
        if UNSTABLE_FLAG not in chosen.flags:
            chosen.flags.append(UNSTABLE_FLAG)
        chosen.spread = spread
        logger.warning("[RUBRIC] unstable scoring scores=%s spread=%s -> %s", scores, spread, chosen.score)
        return chosen

    chosen = copy.deepcopy(results[0])
    chosen.spread = spread
    return chosen


class DeterminismGuard:
    def __init__(self, scorer: RubricScorer, runs: int = 3, spread_threshold: float = 5.0):
        if runs < 1:
            raise InvalidArgument(f"runs must be >= 1, got {runs}")
        self.scorer = scorer
        self.runs = runs
        self.spread_threshold = spread_threshold

    def score_with_rubric(self, transcript: str, rubric: RubricDefinition,
                          prompt: Optional[Mapping[str, Any]] = None) -> RubricResult:
        # independent calls, no shared state between them
        with ThreadPoolExecutor(max_workers=self.runs) as pool:
            futures = [
                pool.submit(self.scorer.score_with_rubric, transcript, rubric, prompt)
                for _ in range(self.runs)
            ]
            results = [f.result() for f in futures]
        return select_trusted(results, self.spread_threshold)


def build_rubric_scorer(client, guard_enabled: bool = False, runs: int = 3, spread_threshold: float = 5.0):
    scorer = RubricScorer(client)
    if guard_enabled:
        return DeterminismGuard(scorer, runs=runs, spread_threshold=spread_threshold)
    return scorer
