"""Unit tests for the AI tutor chat turn."""

from datetime import datetime

import pytest
from sqlalchemy import text

from tutorapi.core.exceptions import TokenLimitExceeded, ValidationError
from tutorapi.database.models import AppErrorLog, ChatLog, Profile, TokenUsageLog, UserLessonProgress, UserSubscription
from tutorapi.models.chat import ChatRequest
from tutorapi.services.chat_service import TutorChatService


def test_reply_without_session_skips_chat_log(session, fake_llm) -> None:
    result = TutorChatService(session, llm_client=fake_llm).reply("kid", ChatRequest(message="Co to jest delta?"))

    assert result["response"] == "Zacznijmy od wzoru na deltę."
    assert result["tokensUsed"] == 120
    assert result["insights"]["needsHelp"] is False
    assert session.query(ChatLog).count() == 0

    usage = session.query(TokenUsageLog).one()
    assert usage.tokens == 120
    assert usage.source == "ai_chat"


def test_reply_with_session_keeps_history(session, fake_llm) -> None:
    service = TutorChatService(session, llm_client=fake_llm)
    first = ChatRequest(message="Nie rozumiem delty", sessionId="chat-1")

    result = service.reply("kid", first)
    service.reply("kid", ChatRequest(message="A co dalej?", sessionId="chat-1"))

    assert result["insights"]["needsHelp"] is True
    assert session.query(ChatLog).filter_by(session_id="chat-1").count() == 4
    assert fake_llm.calls[0]["history"] is None
    assert fake_llm.calls[1]["history"] == [
        {"role": "user", "content": "Nie rozumiem delty"},
        {"role": "assistant", "content": "Zacznijmy od wzoru na deltę."},
    ]
    assert "tura rozmowy: 3" in fake_llm.calls[1]["system_prompt"]


def test_learner_context_in_system_prompt(session, fake_llm) -> None:
    session.add(Profile(user_id="kid", level=4, total_points=320))
    session.add(UserLessonProgress(user_id="kid", topic_name="Funkcja kwadratowa", score=80,
                                   last_accessed_at=datetime(2025, 1, 2)))
    session.add(UserLessonProgress(user_id="kid", topic_name="Ułamki", score=60,
                                   last_accessed_at=datetime(2025, 1, 1)))
    session.flush()

    TutorChatService(session, llm_client=fake_llm).reply(
        "kid", ChatRequest(message="Pomóż mi", weakAreas=["ułamki"]),
    )

    prompt = fake_llm.calls[0]["system_prompt"]
    assert "- Poziom: 4, punkty: 320" in prompt
    assert "- Średni wynik z ostatnich lekcji: 70%" in prompt
    assert "- Ostatnie tematy: Funkcja kwadratowa, Ułamki" in prompt
    assert "- Słabe obszary: ułamki" in prompt


def test_insights_block_is_stripped(session, fake_llm) -> None:
    fake_llm.content = 'Delta to b^2 - 4ac.\n---INSIGHTS--- {"needsHelp": false, "difficulty": "low", "nextAction": "Policz deltę"}'

    result = TutorChatService(session, llm_client=fake_llm).reply("kid", ChatRequest(message="Co to delta?"))

    assert result["response"] == "Delta to b^2 - 4ac."
    assert result["insights"] == {
        "needsHelp": False,
        "topicMastery": "good",
        "suggestedActions": ["Policz deltę"],
    }


def test_empty_message_is_rejected(session, fake_llm) -> None:
    with pytest.raises(ValidationError):
        TutorChatService(session, llm_client=fake_llm).reply("kid", ChatRequest(message="   "))

    assert fake_llm.calls == []


def test_exhausted_tokens_block_the_llm(session, fake_llm) -> None:
    session.add(UserSubscription(
        user_id="kid", subscription_type="free", price_amount=0, monthly_token_limit=500,
        tokens_used_total=500, billing_cycle_start=datetime.utcnow(),
    ))
    session.flush()

    with pytest.raises(TokenLimitExceeded):
        TutorChatService(session, llm_client=fake_llm).reply("kid", ChatRequest(message="Pomocy"))

    assert fake_llm.calls == []


def test_weak_areas_reach_prompt_for_new_learner(session, fake_llm) -> None:
    TutorChatService(session, llm_client=fake_llm).reply(
        "new-kid", ChatRequest(message="Od czego zacząć?", weakAreas=["ułamki", "procenty"]),
    )

    prompt = fake_llm.calls[0]["system_prompt"]
    assert "- Słabe obszary: ułamki, procenty" in prompt
    assert "- Poziom:" not in prompt


def test_failed_context_read_rolls_back_alone(session, fake_llm) -> None:
    """A failing context query falls back to no context and the turn still completes."""
    service = TutorChatService(session, llm_client=fake_llm)

    def _broken_context(user_id, weak_areas=None):
        session.execute(text("SELECT * FROM missing_table"))

    service.learner_context = _broken_context

    result = service.reply("kid", ChatRequest(message="Co to jest delta?", sessionId="chat-9"))

    assert result["tokensUsed"] == 120
    assert "Słabe obszary" not in fake_llm.calls[0]["system_prompt"]
    assert session.query(ChatLog).filter_by(session_id="chat-9").count() == 2
    assert session.query(AppErrorLog).filter_by(location="ai_chat_learner_context").count() == 1
