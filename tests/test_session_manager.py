import pytest

from oral_exam.models.assessment_item import AssessmentItem
from oral_exam.models.assessment_session import AssessmentSession
from oral_exam.models.module_progress import ModuleProgress
from oral_exam.services.errors import (
    ActiveSessionExists,
    InvalidArgument,
    InvalidTransition,
    ModuleLocked,
    SessionNotFound,
)
from oral_exam.services.prompt_bank import MODULE_ITEM_COUNTS, MODULE_ORDER
from oral_exam.services.session_manager import item_sort_key

from conftest import OTHER_USER_ID, USER_ID


def _complete(db, items):
    for item in items:
        item.status = "completed"
    db.commit()


def test_create_full_session(sessions, db):
    state = sessions.create_session(USER_ID, seed=1234)
    session = state.session

    assert session.status == "created"
    assert session.seed == 1234
    assert len(state.items) == sum(MODULE_ITEM_COUNTS.values())
    assert [i.module_type for i in state.items][0] == MODULE_ORDER[0]
    assert state.current_item is state.items[0]
    assert set(session.prompt_selection) == set(MODULE_ORDER)
    assert session.prompt_versions["syntax"]
    assert db.query(ModuleProgress).filter_by(session_id=session.id).count() == len(MODULE_ORDER)


def test_items_follow_canonical_order(sessions):
    items = sessions.create_session(USER_ID).items
    assert items == sorted(items, key=item_sort_key)
    assert [m for m in dict.fromkeys(i.module_type for i in items)] == list(MODULE_ORDER)


def test_same_seed_same_prompts(sessions):
    first = sessions.create_session(USER_ID, seed=77)
    sessions.abandon_session(USER_ID, first.session.id)
    second = sessions.create_session(USER_ID, seed=77)
    assert first.session.prompt_selection == second.session.prompt_selection


def test_prompt_payload_is_a_snapshot(sessions):
    item = sessions.create_session(USER_ID, "single_module", "pronunciation").items[0]
    assert item.prompt_payload["id"] == item.prompt_id
    assert item.prompt_payload["payload"]["text"]


def test_single_module_session(sessions):
    state = sessions.create_session(USER_ID, "single_module", "syntax")
    assert {i.module_type for i in state.items} == {"syntax"}
    assert state.session.module_type == "syntax"


@pytest.mark.parametrize("mode,module", [("weird", None), ("single_module", None), ("single_module", "grammar")])
def test_create_rejects_bad_arguments(sessions, mode, module):
    with pytest.raises(InvalidArgument):
        sessions.create_session(USER_ID, mode, module)


def test_one_active_session_per_user(sessions, db):
    first = sessions.create_session(USER_ID)
    with pytest.raises(ActiveSessionExists) as err:
        sessions.create_session(USER_ID)
    assert err.value.session_id == first.session.id
    # other users are unaffected
    sessions.create_session(OTHER_USER_ID)
    assert db.query(AssessmentSession).count() == 2


def test_resume_is_idempotent(sessions):
    created = sessions.create_session(USER_ID)
    first = sessions.resume_session(USER_ID, created.session.id)
    second = sessions.resume_session(USER_ID, created.session.id)

    assert first.session.status == "in_progress"
    assert first.session.started_at is not None
    assert first.current_item.id == second.current_item.id


def test_resume_points_at_first_incomplete(sessions, db):
    state = sessions.create_session(USER_ID)
    _complete(db, state.items[:3])
    resumed = sessions.resume_session(USER_ID, state.session.id)
    assert resumed.current_item.id == state.items[3].id


def test_resume_unknown_or_foreign_session(sessions):
    state = sessions.create_session(USER_ID)
    with pytest.raises(SessionNotFound):
        sessions.resume_session(OTHER_USER_ID, state.session.id)
    with pytest.raises(SessionNotFound):
        sessions.resume_session(USER_ID, "missing")


def test_next_item_skips_completed_and_wraps(sessions, db):
    state = sessions.create_session(USER_ID, "single_module", "syntax")
    items = state.items
    _complete(db, [items[1], items[2]])

    moved = sessions.next_item(USER_ID, state.session.id)
    assert moved.current_item.id == items[3].id

    _complete(db, [items[3], items[4]])
    wrapped = sessions.next_item(USER_ID, state.session.id)
    assert wrapped.current_item.id == items[0].id


def test_next_item_completes_only_when_everything_is_done(sessions, db):
    state = sessions.create_session(USER_ID, "single_module", "confidence")
    _complete(db, state.items[:1])
    # one item left: next lands on it instead of completing
    assert sessions.next_item(USER_ID, state.session.id).current_item.id == state.items[1].id

    _complete(db, state.items)
    done = sessions.next_item(USER_ID, state.session.id)
    assert done.current_item is None
    assert done.session.status == "completed"
    assert done.session.completed_at is not None

    with pytest.raises(InvalidTransition):
        sessions.next_item(USER_ID, state.session.id)


def test_leaving_a_module_locks_it(sessions, db):
    state = sessions.create_session(USER_ID)
    pronunciation = [i for i in state.items if i.module_type == "pronunciation"]
    _complete(db, pronunciation)

    moved = sessions.next_item(USER_ID, state.session.id)
    assert moved.current_item.module_type == "fluency"

    progress = db.query(ModuleProgress).filter_by(session_id=state.session.id, module_type="pronunciation").one()
    assert progress.locked
    with pytest.raises(ModuleLocked):
        sessions.restart_module(USER_ID, state.session.id, "pronunciation")


def test_restart_module_resets_items(sessions, db):
    state = sessions.create_session(USER_ID, "single_module", "syntax")
    _complete(db, state.items[:2])

    restarted = sessions.restart_module(USER_ID, state.session.id, "syntax")
    assert restarted.current_item.id == state.items[0].id
    assert all(i.status == "not_started" for i in restarted.items)
    assert all(i.attempt_number == 2 for i in restarted.items)
    # prompts unchanged
    assert [i.prompt_id for i in restarted.items] == [i.prompt_id for i in state.items]

    progress = db.query(ModuleProgress).filter_by(session_id=state.session.id, module_type="syntax").one()
    assert progress.attempt_number == 2


def test_restart_module_not_in_session(sessions):
    state = sessions.create_session(USER_ID, "single_module", "syntax")
    with pytest.raises(InvalidArgument):
        sessions.restart_module(USER_ID, state.session.id, "fluency")


def test_abandon_then_terminal(sessions):
    state = sessions.create_session(USER_ID)
    abandoned = sessions.abandon_session(USER_ID, state.session.id)
    assert abandoned.status == "abandoned"
    assert sessions.check_for_unfinished_session(USER_ID) is None

    with pytest.raises(InvalidTransition):
        sessions.abandon_session(USER_ID, state.session.id)
    assert sessions.resume_session(USER_ID, state.session.id).current_item is None


def test_restart_session_abandons_and_creates(sessions, db):
    old = sessions.create_session(USER_ID, "single_module", "fluency")
    new = sessions.restart_session(USER_ID, old.session.id)

    assert new.session.id != old.session.id
    assert new.session.mode == "single_module"
    assert new.session.module_type == "fluency"
    assert db.get(AssessmentSession, old.session.id).status == "abandoned"
    assert sessions.check_for_unfinished_session(USER_ID).id == new.session.id


def test_restart_session_can_change_mode(sessions):
    old = sessions.create_session(USER_ID, "single_module", "fluency")
    new = sessions.restart_session(USER_ID, old.session.id, mode="full")
    assert new.session.mode == "full"
    assert new.session.module_type is None


def test_restart_single_module_keeps_module_when_omitted(sessions):
    old = sessions.create_session(USER_ID, "single_module", "syntax")
    new = sessions.restart_session(USER_ID, old.session.id, mode="single_module")
    assert new.session.mode == "single_module"
    assert new.session.module_type == "syntax"


def test_restart_single_module_from_full_needs_module(sessions, db):
    old = sessions.create_session(USER_ID)
    with pytest.raises(InvalidArgument):
        sessions.restart_session(USER_ID, old.session.id, mode="single_module")
    assert db.get(AssessmentSession, old.session.id).status == "created"

    new = sessions.restart_session(USER_ID, old.session.id, mode="single_module", module_type="comprehension")
    assert new.session.module_type == "comprehension"


def test_update_item_status(sessions, db):
    state = sessions.create_session(USER_ID, "single_module", "confidence")
    item = sessions.update_item_status(USER_ID, state.items[0].id, "error")
    assert db.get(AssessmentItem, item.id).status == "error"
    with pytest.raises(InvalidArgument):
        sessions.update_item_status(USER_ID, item.id, "nonsense")


def test_walking_to_the_end_completes_everything(sessions, db):
    state = sessions.resume_session(USER_ID, sessions.create_session(USER_ID, seed=5).session.id)
    steps = 0
    while state.current_item is not None:
        state.current_item.status = "completed"
        db.commit()
        state = sessions.next_item(USER_ID, state.session.id)
        steps += 1

    assert steps == sum(MODULE_ITEM_COUNTS.values())
    assert state.session.status == "completed"
    assert all(i.status == "completed" for i in sessions.ordered_items(state.session.id))
    assert all(p.locked for p in db.query(ModuleProgress).filter_by(session_id=state.session.id))
