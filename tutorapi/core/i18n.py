"""
Localized user-facing strings.

Polish is the product language; English is kept for staff and tests.
Unknown languages fall back to the configured default, unknown keys to
the key itself.
"""
from typing import Optional

SUPPORTED_LANGUAGES = ("pl", "en")

MESSAGES = {
    "pl": {
        "feedback_correct": "Świetnie! Kontynuuj dobrą pracę.",
        "feedback_incorrect": "Nie martw się, to część procesu nauki. Spróbujmy ponownie.",
        "feedback_start": "Rozpocznijmy Twoją spersonalizowaną sesję nauki!",
        "reason_correct": "prawidłowa odpowiedź - kontynuujemy",
        "reason_incorrect": "nieprawidłowa odpowiedź - dostosowujemy poziom",
        "reason_start": "rozpoczynamy nową sesję z spersonalizowanymi ustawieniami",
        "chat_unavailable": "Przepraszam, wystąpił problem. Spróbuj ponownie za chwilę.",
        "suggest_simpler": "Zaproponuj prostsze wyjaśnienie",
        "suggest_examples": "Dodaj więcej przykładów",
        "suggest_practice": "Przejdź do praktycznych ćwiczeń",
        "tokens_critical": "Zostało tylko {remaining} tokenów! Ulepsz plan, aby kontynuować naukę.",
        "tokens_warning": "Zostało {remaining} tokenów. Rozważ upgrade planu.",
        "tokens_moderate": "Zostało {remaining} tokenów w tym miesiącu.",
        "tokens_good": "Dostępnych tokenów: {remaining}",
    },
    "en": {
        "feedback_correct": "Great! Keep up the good work.",
        "feedback_incorrect": "Don't worry, mistakes are part of learning. Let's try again.",
        "feedback_start": "Let's start your personalised learning session!",
        "reason_correct": "correct answer - continuing",
        "reason_incorrect": "incorrect answer - adjusting the level",
        "reason_start": "starting a new session with personalised settings",
        "chat_unavailable": "Sorry, something went wrong. Please try again in a moment.",
        "suggest_simpler": "Offer a simpler explanation",
        "suggest_examples": "Add more examples",
        "suggest_practice": "Move on to practice exercises",
        "tokens_critical": "Only {remaining} tokens left! Upgrade your plan to keep learning.",
        "tokens_warning": "{remaining} tokens left. Consider upgrading your plan.",
        "tokens_moderate": "{remaining} tokens left this month.",
        "tokens_good": "Available tokens: {remaining}",
    },
}


def resolve_language(accept_language: Optional[str], default: str = "pl") -> str:
    """Pick a supported language from an Accept-Language header's first tag."""
    if accept_language:
        first = accept_language.split(",")[0].strip().lower()
        primary = first.split(";")[0].split("-")[0]
        if primary in SUPPORTED_LANGUAGES:
            return primary
    return default if default in SUPPORTED_LANGUAGES else "pl"


def translate(key: str, language: str = "pl", **params) -> str:
    """Look up a message and fill its placeholders."""
    table = MESSAGES.get(language, MESSAGES["pl"])
    template = table.get(key, MESSAGES["pl"].get(key, key))
    return template.format(**params) if params else template
