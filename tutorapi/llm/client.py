"""
LLM Client for the AI tutor.

Groq is the primary provider, Google Gemini the fallback. A call walks a
provider cascade with linear backoff until one answers; token usage is
taken from the provider response, or estimated from text length when the
provider reports none, so that every call can be metered.
"""
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import google.generativeai as genai
from groq import Groq

from tutorapi.core.config import get_settings
from tutorapi.core.exceptions import LLMError
from tutorapi.core.logging_config import get_logger

logger = get_logger(__name__)

# Rough characters-per-token ratio used when a provider reports no usage
CHARS_PER_TOKEN = 4


@dataclass
class LLMResult:
    """Answer text plus the model that produced it and its token usage."""
    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.usage.get("total_tokens", 0)


def estimate_tokens(text: str) -> int:
    if not text:
        return 0
    return max(1, len(text) // CHARS_PER_TOKEN)


class LLMClient:
    """
    Hybrid client for the Groq and Google Gemini APIs.

    Features:
    - Provider cascade: Groq smart -> Gemini -> Groq fast
    - Linear backoff between providers
    - Token usage on every result
    """

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        self.settings = get_settings()

        self.groq_client = Groq(api_key=self.settings.groq_api_key) if self.settings.groq_api_key else None
        if self.settings.google_api_key:
            genai.configure(api_key=self.settings.google_api_key)

        self.temperature = self.settings.llm_temperature
        self.max_tokens = self.settings.llm_max_tokens
        self._sleep = sleep

        logger.info("Hybrid LLM Client initialized (Groq + Google)")

    def _cascade(self, model: Optional[str]) -> List[Dict[str, str]]:
        cascade = []
        if self.groq_client:
            cascade.append({"provider": "groq", "model": self.settings.llm_model_smart})
        if self.settings.google_api_key:
            cascade.append({"provider": "google", "model": self.settings.llm_model_fallback})
        if self.groq_client:
            cascade.append({"provider": "groq", "model": self.settings.llm_model_fast})

        if model:
            provider = "google" if "gemini" in model.lower() else "groq"
            cascade.insert(0, {"provider": provider, "model": model})
        return cascade

    def generate(
        self,
        user_message: str,
        system_prompt: str,
        history: Optional[List[Dict[str, str]]] = None,
        model: Optional[str] = None,
    ) -> LLMResult:
        """
        Generate a completion, falling back across providers.

        Args:
            user_message: The student's message
            system_prompt: Tutor instructions
            history: Previous turns as {"role", "content"} dicts, oldest first
            model: Optional model to try before the default cascade

        Returns:
            LLMResult with content, model and usage

        Raises:
            LLMError: If every provider failed or none is configured
        """
        cascade = self._cascade(model)
        if not cascade:
            raise LLMError("No LLM provider configured")

        last_error = None

        for i, attempt in enumerate(cascade):
            provider = attempt["provider"]
            target_model = attempt["model"]

            try:
                if i > 0:
                    logger.info(f"Attempt {i + 1}: Falling back to {provider.title()} ({target_model})...")
                    self._sleep(1 * i)

                if provider == "google":
                    return self._generate_google(user_message, system_prompt, history, target_model)
                return self._generate_groq(user_message, system_prompt, history, target_model)

            except Exception as e:
                error_msg = str(e).lower()
                is_rate_limit = "429" in error_msg or "quota" in error_msg or "rate limit" in error_msg

                log_fn = logger.warning if is_rate_limit else logger.error
                log_fn(f"Provider failed ({provider}/{target_model}): {e}")
                last_error = e

        logger.critical("ALL LLM PROVIDERS FAILED.")
        raise LLMError(f"All LLM providers failed. Last error: {last_error}")

    def _generate_groq(self, user_message, system_prompt, history, model) -> LLMResult:
        """Execute request using Groq."""
        messages = [{"role": "system", "content": system_prompt}]
        if history:
            messages.extend(history)
        messages.append({"role": "user", "content": user_message})

        response = self.groq_client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        content = response.choices[0].message.content or ""

        usage = getattr(response, "usage", None)
        if usage is not None and getattr(usage, "total_tokens", None):
            usage_dict = {
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
                "total_tokens": usage.total_tokens,
            }
        else:
            usage_dict = self._estimate_usage(messages, content)

        return LLMResult(content=content, model=model, usage=usage_dict)

    def _generate_google(self, user_message, system_prompt, history, model) -> LLMResult:
        """Execute request using Google Gemini."""
        model_instance = genai.GenerativeModel(
            model_name=model,
            system_instruction=system_prompt,
            generation_config=genai.types.GenerationConfig(
                temperature=self.temperature,
                max_output_tokens=self.max_tokens,
            ),
        )

        # OpenAI-style history -> Gemini roles
        chat_history = []
        for msg in history or []:
            role = "user" if msg["role"] == "user" else "model"
            chat_history.append({"role": role, "parts": [msg["content"]]})

        chat = model_instance.start_chat(history=chat_history)
        response = chat.send_message(user_message)
        content = response.text

        metadata = getattr(response, "usage_metadata", None)
        if metadata is not None and getattr(metadata, "total_token_count", None):
            usage_dict = {
                "prompt_tokens": metadata.prompt_token_count,
                "completion_tokens": metadata.candidates_token_count,
                "total_tokens": metadata.total_token_count,
            }
        else:
            messages = [{"content": system_prompt}] + (history or []) + [{"content": user_message}]
            usage_dict = self._estimate_usage(messages, content)

        return LLMResult(content=content, model=model, usage=usage_dict)

    @staticmethod
    def _estimate_usage(messages: List[Dict[str, str]], content: str) -> Dict[str, int]:
        prompt_tokens = sum(estimate_tokens(m.get("content", "")) for m in messages)
        completion_tokens = estimate_tokens(content)
        return {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        }


# Global client (created lazily so tests can replace it)
_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get the global LLM client instance."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
