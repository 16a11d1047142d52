import json

import pytest

from oral_exam.services.errors import InvalidArgument, PromptNotFound
from oral_exam.services.prompt_bank import (
    MODULE_ITEM_COUNTS,
    MODULE_ORDER,
    PromptBank,
    module_position,
)


@pytest.mark.parametrize("module", MODULE_ORDER)
def test_every_module_has_enough_prompts(prompt_bank, module):
    prompts = prompt_bank.get_prompts(module)
    assert len(prompts) >= MODULE_ITEM_COUNTS[module]
    assert len({p.id for p in prompts}) == len(prompts)
    assert prompt_bank.get_prompt_version(module)


def test_get_prompts_by_ids_keeps_requested_order(prompt_bank):
    ids = [p.id for p in prompt_bank.get_prompts("syntax")][::-1]
    assert [p.id for p in prompt_bank.get_prompts_by_ids("syntax", ids)] == ids


def test_unknown_prompt_id(prompt_bank):
    with pytest.raises(PromptNotFound):
        prompt_bank.get_prompts_by_ids("syntax", ["S1", "does-not-exist"])


def test_unknown_module(prompt_bank):
    with pytest.raises(InvalidArgument):
        prompt_bank.get_prompts("grammar")


def test_module_position_is_canonical_order():
    assert module_position("pronunciation") == 0
    assert module_position("comprehension") == len(MODULE_ORDER) - 1


def test_catalog_module_mismatch_is_rejected(tmp_path):
    (tmp_path / "fluency.json").write_text(json.dumps({
        "version": "test",
        "module": "syntax",
        "prompts": [],
    }), encoding="utf-8")
    with pytest.raises(InvalidArgument):
        PromptBank(tmp_path).get_prompts("fluency")


def test_returned_list_is_a_copy(prompt_bank):
    prompts = prompt_bank.get_prompts("confidence")
    prompts.clear()
    assert prompt_bank.get_prompts("confidence")
