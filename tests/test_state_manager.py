import json
import os
import time

import pytest

from src.orchestrator.schema import (
    Candidate,
    CandidateStatus,
    Difficulty,
    InterviewQuestion,
    QuestionStatus,
    SessionStatus,
)
from src.orchestrator.state_manager import SessionStore, StateManager
from src.utils.error_handlers import (
    CandidateNotFoundError,
    InvalidTransitionError,
    QuestionNotFoundError,
    SessionNotFoundError,
)


def make_question(session_id, order, status=QuestionStatus.ACTIVE, difficulty=Difficulty.EASY):
    return InterviewQuestion(
        session_id=session_id,
        order=order,
        difficulty=difficulty,
        prompt=f"Question {order}",
        timer_seconds=20,
        remaining_seconds=20,
        status=status,
    )


@pytest.fixture
def session(store):
    candidate = store.upsert_candidate(Candidate(name="Jane Doe"))
    return store.create_session(candidate.id)


def test_lookups_raise_for_unknown_ids(store):
    with pytest.raises(SessionNotFoundError):
        store.get_session("nope")
    with pytest.raises(CandidateNotFoundError):
        store.get_candidate("nope")
    with pytest.raises(QuestionNotFoundError):
        store.get_question("nope")
    assert store.find_session("nope") is None


def test_create_session_requires_candidate(store):
    with pytest.raises(CandidateNotFoundError):
        store.create_session("ghost")


def test_only_one_active_question(store, session):
    store.add_question_to_session(make_question(session.id, 0))
    with pytest.raises(InvalidTransitionError):
        store.add_question_to_session(make_question(session.id, 1))
    assert len(store.active_questions(session.id)) == 1


def test_question_order_must_follow_asked_questions(store, session):
    with pytest.raises(InvalidTransitionError):
        store.add_question_to_session(make_question(session.id, 2))


def test_resolved_questions_stay_resolved(store, session):
    question = store.add_question_to_session(make_question(session.id, 0))
    store.set_question_status(question.id, QuestionStatus.ANSWERED)
    with pytest.raises(InvalidTransitionError):
        store.set_question_status(question.id, QuestionStatus.ACTIVE)
    with pytest.raises(InvalidTransitionError):
        store.set_question_status(question.id, QuestionStatus.SKIPPED)
    assert question.status == QuestionStatus.ANSWERED


def test_active_question_cannot_go_back_to_pending(store, session):
    question = store.add_question_to_session(make_question(session.id, 0))
    with pytest.raises(InvalidTransitionError):
        store.set_question_status(question.id, QuestionStatus.PENDING)


def test_current_question_must_be_active_and_owned(store, session):
    question = store.add_question_to_session(make_question(session.id, 0))
    store.set_current_question(session.id, question.id)
    assert store.current_question(session.id).id == question.id

    other_candidate = store.upsert_candidate(Candidate())
    other = store.create_session(other_candidate.id)
    with pytest.raises(InvalidTransitionError):
        store.set_current_question(other.id, question.id)

    store.set_question_status(question.id, QuestionStatus.SKIPPED)
    store.set_current_question(session.id, None)
    with pytest.raises(InvalidTransitionError):
        store.set_current_question(session.id, question.id)


def test_completed_session_is_final(store, session):
    store.update_session_status(session.id, SessionStatus.COMPLETED)
    assert session.completed_at is not None
    with pytest.raises(InvalidTransitionError):
        store.update_session_status(session.id, SessionStatus.IN_PROGRESS)


def test_started_at_is_set_once(store, session):
    store.mark_session_started(session.id)
    first = session.started_at
    store.mark_session_started(session.id)
    assert session.started_at == first


def test_timer_never_goes_below_zero(store, session):
    question = store.add_question_to_session(make_question(session.id, 0))
    question.remaining_seconds = 1
    assert store.decrement_question_timer(question.id) == 0
    assert store.decrement_question_timer(question.id) == 0


def test_scores_are_clamped(store, session):
    question = store.add_question_to_session(make_question(session.id, 0))
    store.update_question_evaluation(question.id, 180, "generous")
    assert question.evaluation.score == 100
    store.update_question_evaluation(question.id, -5, "harsh")
    assert question.evaluation.score == 0

    store.update_candidate_score(session.candidate_id, 120, "summary")
    candidate = store.get_candidate(session.candidate_id)
    assert candidate.score == 100
    store.update_candidate_score(session.candidate_id, 40)
    assert candidate.summary == "summary"


def test_contact_update_rejects_unknown_fields(store, session):
    store.update_candidate_contact(session.candidate_id, email="jane@example.com")
    assert store.get_candidate(session.candidate_id).email == "jane@example.com"
    with pytest.raises(ValueError):
        store.update_candidate_contact(session.candidate_id, score="100")


def test_candidate_status_touches_activity(store, session):
    store.update_candidate_status(session.candidate_id, CandidateStatus.INTERVIEWING)
    candidate = store.get_candidate(session.candidate_id)
    assert candidate.status == CandidateStatus.INTERVIEWING
    assert candidate.last_active_at is not None


def test_thread_is_append_only_copy(store, session):
    store.append_message(session.id, "user", "hello")
    thread = store.get_thread(session.id)
    thread.append("not stored")
    assert len(store.get_thread(session.id)) == 1

    with pytest.raises(SessionNotFoundError):
        store.append_message("ghost", "user", "hi")

    store.clear_thread(session.id)
    assert store.get_thread(session.id) == []


def test_check_invariants_reports_problems(store, session):
    question = store.add_question_to_session(make_question(session.id, 0))
    store.set_current_question(session.id, question.id)
    assert store.check_invariants(session.id) == []

    # Bypass the store to simulate a corrupt record
    question.status = QuestionStatus.ANSWERED
    problems = store.check_invariants(session.id)
    assert any("current question" in p for p in problems)


def test_save_and_load_round_trip(tmp_path, store, session):
    question = store.add_question_to_session(make_question(session.id, 0))
    store.set_current_question(session.id, question.id)
    store.append_message(session.id, "assistant", "Question 0", type="question", question_id=question.id)

    manager = StateManager(store, tmp_path)
    manager.save_session(session.id)
    assert (tmp_path / f"{session.id}.json").exists()
    assert not (tmp_path / f"{session.id}.tmp").exists()

    fresh = SessionStore()
    loaded = StateManager(fresh, tmp_path).load_session(session.id)

    assert loaded.current_question_id == question.id
    assert fresh.get_candidate(session.candidate_id).name == "Jane Doe"
    assert fresh.current_question(session.id).prompt == "Question 0"
    message = fresh.get_thread(session.id)[0]
    assert message.meta == {"type": "question", "question_id": question.id}


def test_load_clears_stale_current_question(tmp_path, store, session):
    question = store.add_question_to_session(make_question(session.id, 0))
    store.set_current_question(session.id, question.id)
    manager = StateManager(store, tmp_path)
    manager.save_session(session.id)

    path = tmp_path / f"{session.id}.json"
    data = json.loads(path.read_text(encoding="utf-8"))
    data["questions"][0]["status"] = "answered"
    path.write_text(json.dumps(data), encoding="utf-8")

    fresh = SessionStore()
    loaded = StateManager(fresh, tmp_path).load_session(session.id)
    assert loaded.current_question_id is None
    assert fresh.check_invariants(session.id) == []


def test_load_missing_session_returns_none(tmp_path, store):
    assert StateManager(store, tmp_path).load_session("ghost") is None


def test_recovery_info_lists_unfinished_sessions(tmp_path, store, session):
    done_candidate = store.upsert_candidate(Candidate(name="Done"))
    done = store.create_session(done_candidate.id)
    store.update_session_status(done.id, SessionStatus.COMPLETED)

    manager = StateManager(store, tmp_path)
    manager.save_all()
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")

    info = manager.get_recovery_info()
    assert info == [{
        "session_id": session.id,
        "candidate_name": "Jane Doe",
        "status": "not_started",
        "questions_asked": 0,
    }]


def test_cleanup_removes_only_old_completed_sessions(tmp_path, store, session):
    done_candidate = store.upsert_candidate(Candidate(name="Done"))
    done = store.create_session(done_candidate.id)
    store.update_session_status(done.id, SessionStatus.COMPLETED)

    manager = StateManager(store, tmp_path)
    manager.save_all()

    old = time.time() - 30 * 24 * 3600
    for path in tmp_path.glob("*.json"):
        os.utime(path, (old, old))

    assert manager.cleanup_old_sessions(days=7) == 1
    assert not (tmp_path / f"{done.id}.json").exists()
    assert (tmp_path / f"{session.id}.json").exists()
