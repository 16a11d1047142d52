# oral_exam/services/rubrics.py
"""
LLM rubrics for the modules that are not scored by a closed-form formula.

Each rubric declares the bounds of its subscores; the scorer clamps whatever
the model returns into those bounds.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional


@dataclass
class RubricDefinition:
    module: str
    system_prompt: str
    subscore_bounds: Dict[str, float]
    build_user_content: Callable[[str, Mapping[str, Any]], str]
    max_score: float = 100.0
    temperature: float = 0.2
    feedback_keys: List[str] = field(default_factory=lambda: ["feedback"])


# =========================
# Confidence
# =========================
CONFIDENCE_PROMPT = """You are a French language evaluator. Your task is to assess how confidently the student communicates in informal spoken French.

You are NOT judging grammar or accuracy. You are evaluating confidence: how much the speaker asserts their views, expresses emotion or vulnerability, and carries the conversation with clarity and energy.

# Scoring Criteria

## 1. length_development (0-25)
- 0: very short, hesitant or clipped replies (under 50 words)
- 10: some development (50-100 words)
- 20: fully developed (100-200 words)
- 25: very expressive, more than 200 words with examples and elaboration

## 2. assertiveness (0-25)
Strong personal positioning: "Moi je pense…", "Franchement…", "Je vais te dire…", opinions stated directly, first person without hedging. Higher when the speaker leads instead of reacting.

## 3. emotional_engagement (0-20)
- 0-5: neutral, purely factual
- 10: some feeling or anecdote
- 20: vulnerability, humour, personal stories, expressive tone

## 4. clarity_control (0-15)
Clear progression of ideas; the speaker knows what they want to say.

## 5. confidence_signals (0-15)
3 points each for expressions like "Franchement…", "Je vais être honnête…", "Le truc, c'est que…", "Moi, je pense que…", "Ce que j'adore, c'est…".

Do NOT subtract points for grammar mistakes, hesitation words (euh…) or accent.

Output ONLY JSON:
{
  "total_score": <0-100>,
  "breakdown": {"length_development": <0-25>, "assertiveness": <0-25>, "emotional_engagement": <0-20>, "clarity_control": <0-15>, "confidence_signals": <0-15>},
  "evidence": ["<short quote from the transcript>"],
  "feedback": "<2-3 sentences in English: what went well, what to improve>"
}"""


def _confidence_content(transcript: str, payload: Mapping[str, Any]) -> str:
    question = payload.get("question", "")
    return (
        f'The prompt given to the student was: "{question}"\n\n'
        f"The student's response (transcribed from audio):\n\"{transcript}\"\n\n"
        "Analyze this response and return your evaluation as JSON."
    )


# =========================
# Syntax (A2 structures)
# =========================
SYNTAX_PROMPT = """You are a strict but fair evaluator of French A2 structures. Output ONLY valid JSON.

Score the learner transcript for A2 structures. Focus on structure, not vocabulary or pronunciation.

## Rules
- Dropped "ne" is allowed if "pas/jamais/rien" is used correctly (common in spoken French)
- Be conservative if the transcription seems uncertain
- Minor errors that don't impede understanding are penalised less

## Subscores (total 100)
- passe_compose (0-25): 0 no attempt, 10 mostly wrong forms, 20 mostly correct, 25 consistent with proper auxiliaries and agreement
- futur_proche (0-15): 0 none, 7 one correct "aller + infinitif", 12 two or more, 15 consistent and natural
- pronouns (0-25): le/la/les/lui/leur choice and position; 0 none, 10 often misplaced, 20 mostly correct, 25 consistently correct
- questions (0-15): 0 none, 8 one or two clear questions, 15 three or more well formed
- connectors_structure (0-20): et, mais, parce que, puis, donc, d'abord, ensuite, enfin; 0-5 single clauses, 10-15 simple chaining, 16-20 structured mini-argument

Return JSON in this exact format:
{
  "overall": <0-100>,
  "subs": {
    "passe_compose": {"score": <0-25>, "evidence": ["<quote>"]},
    "futur_proche": {"score": <0-15>, "evidence": ["<quote>"]},
    "pronouns": {"score": <0-25>, "evidence": ["<quote>"]},
    "questions": {"score": <0-15>, "evidence": ["<quote>"]},
    "connectors_structure": {"score": <0-20>, "evidence": ["<quote>"]}
  },
  "errors_top3": [{"type": "<category>", "example": "<from transcript>", "fix_hint_fr": "<correction in French>"}],
  "feedback": "<1-2 sentences in English>",
  "confidence": <0-1>
}"""


def _syntax_content(transcript: str, payload: Mapping[str, Any]) -> str:
    lines = [
        f"Task: {payload.get('name', '')}",
        f"Instruction given (French): {payload.get('promptFr', '')}",
        f"Target structures: {', '.join(payload.get('targetStructures', []))}",
    ]
    for sub in payload.get("items", []):
        lines.append(f"- mini-question: {sub.get('q')} (ideal: {sub.get('ideal')})")
    lines.append("")
    lines.append("Learner transcript:")
    lines.append(transcript)
    return "\n".join(lines)


# =========================
# Conversation
# =========================
CONVERSATION_PROMPT = """You are scoring an A2-level French conversation. Output ONLY JSON.
Do not reward fancy vocabulary. Reward understanding, repair, and staying on topic.
False starts/repetitions are NOT penalized.

Score:
- comprehension_task (0-45)
- repair (0-30): credit "Pardon, vous voulez dire que… ?", "Vous pouvez reformuler ?"; no credit for "Hein ?" or ignoring the confusion
- flow (0-25)

Return JSON:
{
  "overall": <0-100>,
  "subs": {
    "comprehension_task": {"score": <0-45>, "evidence": []},
    "repair": {"score": <0-30>, "evidence": []},
    "flow": {"score": <0-25>, "evidence": []}
  },
  "flags": [],
  "feedback": "<1-2 sentences in English>",
  "confidence": <0-1>
}"""


def _conversation_content(transcript: str, payload: Mapping[str, Any]) -> str:
    return f"Scenario goal:\n{payload.get('goal', '')}\n\nConversation (turn by turn):\n{transcript}"


# =========================
# Comprehension
# =========================
COMPREHENSION_PROMPT = """SCORE LISTENING COMPREHENSION FROM THE LEARNER RESPONSE. OUTPUT ONLY JSON.

BE STRICT ABOUT WHETHER THEY UNDERSTOOD THE KEY FACTS AND INTENT.

DO NOT JUDGE PRONUNCIATION OR GRAMMAR."""


def _comprehension_content(transcript: str, payload: Mapping[str, Any]) -> str:
    return (
        f"Context: {payload.get('context', '')}\n\n"
        f"Audio script (ground truth): {payload.get('audioScript', '')}\n\n"
        f"Key facts to understand: {json.dumps(payload.get('keyFacts', []), ensure_ascii=False)}\n\n"
        f"Acceptable intents: {json.dumps(payload.get('acceptableIntents', []), ensure_ascii=False)}\n\n"
        f"Learner response transcript:\n\n{transcript}\n\n"
        "Return:\n\n"
        "{\n"
        '  "score": 0-100,\n'
        '  "understood_facts": [{"fact":"...","ok":true/false,"evidence":"..."}],\n'
        '  "intent_match": {"ok":true/false,"type":"answer|question|other"},\n'
        '  "feedback_fr": "1-2 supportive sentences in French",\n'
        '  "confidence": 0-1\n'
        "}"
    )


RUBRICS: Dict[str, RubricDefinition] = {
    "confidence": RubricDefinition(
        module="confidence",
        system_prompt=CONFIDENCE_PROMPT,
        subscore_bounds={
            "length_development": 25,
            "assertiveness": 25,
            "emotional_engagement": 20,
            "clarity_control": 15,
            "confidence_signals": 15,
        },
        build_user_content=_confidence_content,
    ),
    "syntax": RubricDefinition(
        module="syntax",
        system_prompt=SYNTAX_PROMPT,
        subscore_bounds={
            "passe_compose": 25,
            "futur_proche": 15,
            "pronouns": 25,
            "questions": 15,
            "connectors_structure": 20,
        },
        build_user_content=_syntax_content,
    ),
    "conversation": RubricDefinition(
        module="conversation",
        system_prompt=CONVERSATION_PROMPT,
        subscore_bounds={"comprehension_task": 45, "repair": 30, "flow": 25},
        build_user_content=_conversation_content,
    ),
    "comprehension": RubricDefinition(
        module="comprehension",
        system_prompt=COMPREHENSION_PROMPT,
        subscore_bounds={},
        build_user_content=_comprehension_content,
        temperature=0.0,
        feedback_keys=["feedback_fr", "feedback"],
    ),
}


def get_rubric(module: str) -> Optional[RubricDefinition]:
    return RUBRICS.get(module)
