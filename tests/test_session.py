from __future__ import annotations

from deepsearch.models.actions import ActionKind, AnswerAction, ContextEntry, SearchAction
from deepsearch.models.session import ResearchSession, normalize_question
from deepsearch.services.budget import TokenBudget


def _session(question: str = "orig") -> ResearchSession:
    return ResearchSession(question=question, budget=TokenBudget(ceiling=100))


def test_new_session_starts_with_the_original_question():
    session = _session()
    assert list(session.gaps) == ["orig"]
    assert session.all_questions == ["orig"]
    assert session.step == 0


def test_normalize_question_ignores_case_and_spacing():
    assert normalize_question("  What IS\tJina ") == "what is jina"


def test_next_question_allows_reflect_only_with_short_queue():
    session = _session()
    session.enqueue("Q1")

    assert session.next_question() == ("orig", False)
    assert session.next_question() == ("Q1", True)
    # Empty queue falls back to the original question.
    assert session.next_question() == ("orig", True)


def test_enqueue_skips_blank_and_pending_questions():
    session = _session()
    assert session.enqueue("Q1") is True
    assert session.enqueue(" q1 ") is False
    assert session.enqueue("   ") is False
    assert list(session.gaps) == ["orig", "Q1"]


def test_requeue_original_moves_it_to_the_back():
    session = _session()
    session.register_questions(["Q1", "Q2"])
    session.requeue_original()
    assert list(session.gaps) == ["Q1", "Q2", "orig"]


def test_allowed_actions_always_include_answer():
    session = _session()
    session.disabled_actions.update({ActionKind.SEARCH, ActionKind.ANSWER})

    allowed = session.allowed_actions(allow_reflect=False)

    assert allowed == frozenset({ActionKind.DEEP_DIVE, ActionKind.ANSWER})


def test_reject_attempt_moves_context_to_bad_context():
    session = _session()
    first = ContextEntry(step=1, question="orig", action=SearchAction(query="one"))
    second = ContextEntry(step=2, question="orig", action=AnswerAction(text="maybe"))
    session.record(first)
    session.record(second)

    session.reject_attempt()

    assert session.context == []
    assert session.bad_context == [first, second]


def test_visited_urls_are_unique():
    session = _session()
    session.mark_visited("https://example.com")
    session.mark_visited("https://example.com")
    assert session.visited_urls == ["https://example.com"]
    assert session.is_visited("https://example.com")


def test_snapshot_serializes_all_logs():
    session = _session()
    session.all_keywords.append("jina reader")
    session.record(ContextEntry(step=1, question="orig", action=SearchAction(query="jina reader"), result=[]))

    snapshot = session.snapshot()

    assert snapshot["keywords"] == ["jina reader"]
    assert snapshot["questions"] == ["orig"]
    assert snapshot["bad_context"] == []
    assert snapshot["context"][0]["searchQuery"] == "jina reader"
    assert snapshot["context"][0]["result"] == []
