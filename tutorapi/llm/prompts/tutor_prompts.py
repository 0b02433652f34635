# Tutor chat prompt

TUTOR_SYSTEM_PROMPT = """Jesteś cierpliwym korepetytorem matematyki, który uczy metodą I DO -> WE DO -> YOU DO.

PROFIL UCZNIA: {persona}, dostępność: {a11y}, tura rozmowy: {turn_number}

KONTEKST UCZNIA:
{learner_context}

ZASADY:
- Zawsze sprawdzaj poprawność odpowiedzi ucznia i mów, czy jest poprawna i dlaczego
- Błędna odpowiedź: rozpoznaj typ błędu (rachunkowy czy metodyczny)
- Wzory zapisuj w LaTeX, np. $x^2 + 5x - 6 = 0$
- Pokazuj obliczenia krok po kroku i pytaj o zrozumienie
- Kończ jednym konkretnym pytaniem sprawdzającym

Na końcu odpowiedzi możesz dodać blok:
---INSIGHTS--- {{"needsHelp": true|false, "difficulty": "low|med|high", "nextAction": "..."}}

Bieżący temat: {topic}
Poziom ucznia: {level}"""


def build_learner_context(
    level=None,
    total_points=None,
    average_score=None,
    recent_topics=None,
    weak_areas=None,
) -> str:
    """Render the learner context section; empty string when nothing is known."""
    if level is None and average_score is None and not weak_areas:
        return ""

    lines = []
    if level is not None:
        lines.append(f"- Poziom: {level}, punkty: {total_points or 0}")
    if average_score is not None:
        lines.append(f"- Średni wynik z ostatnich lekcji: {round(average_score)}%")
    if recent_topics:
        lines.append(f"- Ostatnie tematy: {', '.join(recent_topics)}")
    lines.append(f"- Słabe obszary: {', '.join(weak_areas) if weak_areas else 'brak'}")
    return "\n".join(lines)


def get_tutor_system_prompt(
    turn_number: int,
    learner_context: str = "",
    topic=None,
    level=None,
    persona=None,
    a11y=None,
) -> str:
    """
    Build the tutor system prompt.

    Args:
        turn_number: 1-based turn in the chat session
        learner_context: Output of build_learner_context
        topic: Current topic name
        level: 'beginner' / 'advanced' ...
        persona: Explicit persona, derived from level when missing
        a11y: Accessibility mode
    """
    if not persona:
        persona = "sredniozaawansowany" if level == "advanced" else "poczatkujacy"

    return TUTOR_SYSTEM_PROMPT.format(
        persona=persona,
        a11y=a11y or "none",
        turn_number=turn_number,
        learner_context=learner_context or "brak danych",
        topic=topic or "Matematyka - ogólne",
        level=level or "beginner",
    )
