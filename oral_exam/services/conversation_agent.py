# oral_exam/services/conversation_agent.py
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from openai import OpenAI

from oral_exam.services.errors import RubricScoringError

logger = logging.getLogger(__name__)

MODEL_NAME = "gpt-4o-mini"

AGENT_SYSTEM_PROMPT = """You are a friendly French conversation partner for an A2 learner.
Constraints:
- Use short sentences, A2 vocabulary, and clear questions.
- Speak naturally but not fast.
- Ask ONE question per turn.
- Include exactly one moment of mild misunderstanding so the learner can repair.
- Never correct grammar explicitly. Keep conversation going."""


def build_agent_prompt(scenario: Mapping[str, Any], turn_number: int) -> str:
    brief = f"{scenario.get('title', '')}\nGoal: {scenario.get('goal', '')}"
    slots = json.dumps(scenario.get("slots", {}), ensure_ascii=False)
    return (
        f"{AGENT_SYSTEM_PROMPT}\n\nScenario:\n{brief}\n\n"
        f"State to track (slots JSON):\n{slots}\n\n"
        f"This is turn {turn_number}. Keep the conversation moving naturally."
    )


def format_turns(turns: Sequence[Mapping[str, str]]) -> str:
    """'Agent: ...' / 'User: ...' lines, as fed to the conversation rubric."""
    return "\n".join(
        f"{'Agent' if t.get('role') == 'agent' else 'User'}: {t.get('content', '')}" for t in turns
    )


class ConversationAgent:
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

    def next_turn(self, scenario: Mapping[str, Any], history: Sequence[Mapping[str, str]],
                  turn_number: Optional[int] = None) -> str:
        if not history:
            return scenario.get("starterAgentTurn", "Bonjour !")

        messages: List[Dict[str, str]] = [
            {"role": "system", "content": build_agent_prompt(scenario, turn_number or len(history))},
        ]
        for t in history:
            messages.append({
                "role": "assistant" if t.get("role") == "agent" else "user",
                "content": t.get("content", ""),
            })

        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=150,
                temperature=0.8,
            )
            reply = (completion.choices[0].message.content or "").strip()
        except Exception as e:
            logger.error("[CONVERSATION] agent turn failed: %s", e)
            raise RubricScoringError(f"conversation agent failed: {e}") from e

        logger.info("[CONVERSATION] turn=%s chars=%s", turn_number or len(history), len(reply))
        return reply
