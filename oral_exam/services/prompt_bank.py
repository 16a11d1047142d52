# oral_exam/services/prompt_bank.py
"""
Versioned prompt catalogs, one JSON file per module under oral_exam/prompt_bank/.
"""
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Sequence

from oral_exam.schemas.prompt import Prompt, PromptCatalog
from oral_exam.services.errors import InvalidArgument, PromptNotFound

logger = logging.getLogger(__name__)

PROMPT_BANK_DIR = Path(__file__).resolve().parent.parent / "prompt_bank"

# canonical exam order; items are sequenced by (position here, item_index)
MODULE_ORDER = (
    "pronunciation",
    "fluency",
    "confidence",
    "syntax",
    "conversation",
    "comprehension",
)

MODULE_ITEM_COUNTS: Dict[str, int] = {
    "pronunciation": 5,
    "fluency": 3,
    "confidence": 2,
    "syntax": 5,
    "conversation": 2,
    "comprehension": 6,
}


def validate_module(module: str) -> str:
    if module not in MODULE_ORDER:
        raise InvalidArgument(f"unknown module: {module}")
    return module


def module_position(module: str) -> int:
    return MODULE_ORDER.index(validate_module(module))


class PromptBank:
    def __init__(self, directory: Path = PROMPT_BANK_DIR):
        self.directory = Path(directory)
        self._catalogs: Dict[str, PromptCatalog] = {}

    def _catalog(self, module: str) -> PromptCatalog:
        validate_module(module)
        if module not in self._catalogs:
            path = self.directory / f"{module}.json"
            with open(path, "r", encoding="utf-8") as f:
                catalog = PromptCatalog.model_validate(json.load(f))
            if catalog.module != module:
                raise InvalidArgument(f"{path} declares module {catalog.module!r}")
            logger.info("[PROMPTS] loaded module=%s version=%s count=%s", module, catalog.version, len(catalog.prompts))
            self._catalogs[module] = catalog
        return self._catalogs[module]

    def get_prompts(self, module: str) -> List[Prompt]:
        return list(self._catalog(module).prompts)

    def get_prompt_version(self, module: str) -> str:
        return self._catalog(module).version

    def get_prompts_by_ids(self, module: str, ids: Sequence[str]) -> List[Prompt]:
        """Prompts in the order of ``ids``."""
        by_id = {p.id: p for p in self._catalog(module).prompts}
        missing = [i for i in ids if i not in by_id]
        if missing:
            raise PromptNotFound(f"{module}: {', '.join(missing)}")
        return [by_id[i] for i in ids]


@lru_cache(maxsize=1)
def get_prompt_bank() -> PromptBank:
    return PromptBank()


def get_prompts(module: str) -> List[Prompt]:
    return get_prompt_bank().get_prompts(module)


def get_prompt_version(module: str) -> str:
    return get_prompt_bank().get_prompt_version(module)


def get_prompts_by_ids(module: str, ids: Sequence[str]) -> List[Prompt]:
    return get_prompt_bank().get_prompts_by_ids(module, ids)
