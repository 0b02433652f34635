"""
Learning insights for a tutor chat turn.

The model may append a machine-readable block to its answer:

    ...answer text...
    ---INSIGHTS--- {"needsHelp": false, "difficulty": "med", "nextAction": "..."}

When the block is present it is stripped from the visible answer and
mapped to insights; otherwise a keyword heuristic over the student's
message is used.
"""
import json
import re
from typing import Any, Dict, List, Optional, Tuple

from tutorapi.core.i18n import translate
from tutorapi.core.logging_config import get_logger

logger = get_logger(__name__)

INSIGHTS_PATTERN = re.compile(r"---INSIGHTS---\s*(\{[\s\S]*?\})")

CONFUSION_WORDS = ["nie rozumiem", "confused", "trudne", "ciężkie", "nie wiem"]
UNDERSTANDING_WORDS = ["rozumiem", "jasne", "ok", "dzięki", "clear"]

DIFFICULTY_TO_MASTERY = {"low": "good", "med": "improving"}


def split_insights_block(answer: str) -> Tuple[str, Optional[Dict[str, Any]]]:
    """
    Separate the optional insights block from a model answer.

    Returns:
        Tuple of (visible answer, parsed block or None). A block that is
        not valid JSON is left in the answer and ignored.
    """
    match = INSIGHTS_PATTERN.search(answer or "")
    if not match:
        return answer, None

    try:
        block = json.loads(match.group(1))
    except json.JSONDecodeError:
        logger.debug("Ignoring malformed insights block")
        return answer, None

    if not isinstance(block, dict):
        return answer, None

    return answer.replace(match.group(0), "").strip(), block


def insights_from_block(block: Dict[str, Any]) -> Dict[str, Any]:
    """Map a model-provided block to the insights shape."""
    if isinstance(block.get("needsHelp"), bool):
        needs_help = block["needsHelp"]
    elif isinstance(block.get("confidence"), (int, float)):
        needs_help = block["confidence"] < 0.5
    else:
        needs_help = False

    mastery = block.get("topicMastery")
    if not mastery:
        difficulty = block.get("difficulty")
        mastery = DIFFICULTY_TO_MASTERY.get(difficulty, "needs_work") if difficulty else "unknown"

    return {
        "needsHelp": needs_help,
        "topicMastery": mastery,
        "suggestedActions": [block["nextAction"]] if block.get("nextAction") else [],
    }


def heuristic_insights(user_message: str, language: str = "pl") -> Dict[str, Any]:
    """Keyword-based insights from the student's own message."""
    text = (user_message or "").lower()
    suggestions: List[str] = []
    insights = {"needsHelp": False, "topicMastery": "unknown", "suggestedActions": suggestions}

    if any(word in text for word in CONFUSION_WORDS):
        insights["needsHelp"] = True
        suggestions.append(translate("suggest_simpler", language))
        suggestions.append(translate("suggest_examples", language))

    if any(word in text for word in UNDERSTANDING_WORDS):
        insights["topicMastery"] = "improving"
        suggestions.append(translate("suggest_practice", language))

    return insights


def extract_insights(answer: str, user_message: str, language: str = "pl") -> Tuple[str, Dict[str, Any]]:
    """Visible answer plus insights, preferring the model's own block."""
    visible, block = split_insights_block(answer)
    if block is not None:
        return visible, insights_from_block(block)
    return visible, heuristic_insights(user_message, language)
