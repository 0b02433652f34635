"""Unit tests for tutor chat insights extraction."""

from tutorapi.rules.insights import extract_insights, heuristic_insights, split_insights_block


def test_block_is_stripped_and_mapped() -> None:
    answer = 'Policz deltę.\n---INSIGHTS--- {"needsHelp": true, "difficulty": "med", "nextAction": "Ćwicz deltę"}'

    visible, insights = extract_insights(answer, "pomóż")

    assert visible == "Policz deltę."
    assert insights == {
        "needsHelp": True,
        "topicMastery": "improving",
        "suggestedActions": ["Ćwicz deltę"],
    }


def test_block_difficulty_mapping() -> None:
    _, low = extract_insights('ok ---INSIGHTS--- {"difficulty": "low"}', "")
    _, high = extract_insights('ok ---INSIGHTS--- {"difficulty": "high"}', "")
    _, none = extract_insights('ok ---INSIGHTS--- {"confidence": 0.2}', "")

    assert low["topicMastery"] == "good"
    assert high["topicMastery"] == "needs_work"
    assert none["topicMastery"] == "unknown"
    assert none["needsHelp"] is True


def test_malformed_block_is_left_in_answer() -> None:
    answer = "Tekst ---INSIGHTS--- {not json}"

    visible, block = split_insights_block(answer)

    assert visible == answer
    assert block is None


def test_heuristic_detects_confusion() -> None:
    insights = heuristic_insights("To jest trudne", "en")

    assert insights["needsHelp"] is True
    assert insights["suggestedActions"] == ["Offer a simpler explanation", "Add more examples"]


def test_heuristic_detects_understanding() -> None:
    insights = heuristic_insights("Jasne, dzięki!", "pl")

    assert insights["needsHelp"] is False
    assert insights["topicMastery"] == "improving"
    assert insights["suggestedActions"] == ["Przejdź do praktycznych ćwiczeń"]


def test_heuristic_without_keywords() -> None:
    assert heuristic_insights("Ile to 2+2?") == {
        "needsHelp": False,
        "topicMastery": "unknown",
        "suggestedActions": [],
    }
