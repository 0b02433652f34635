"""
Prompts module - LLM prompt templates.

Prompts are stored as separate Python files so prompt changes show up
clearly in version control.
"""
from tutorapi.llm.prompts.tutor_prompts import (
    build_learner_context,
    get_tutor_system_prompt,
)

__all__ = [
    "build_learner_context",
    "get_tutor_system_prompt",
]
