import logging
import os
from typing import List, Optional

from google import genai
from google.genai import types

from engine.errors import ExternalServiceDegraded

logger = logging.getLogger(__name__)

# Override with the GEMINI_MODEL_NAME env var or commentary.model_name in config.
DEFAULT_MODEL_NAME = os.getenv("GEMINI_MODEL_NAME", "gemini-2.0-flash")


class LLMClient:
    """
    Thin wrapper around the Gemini client.

    Any SDK error, missing credentials or an empty answer is raised as
    ExternalServiceDegraded so the commentary engine can fall back to
    templates.

    Usage:
        llm = LLMClient(system_prompt="You are a cricket commentator")
        text = llm.generate("Say hello")
    """

    service_name = "gemini"

    def __init__(
        self,
        system_prompt: str,
        model_name: str = DEFAULT_MODEL_NAME,
        api_key: Optional[str] = None,
        max_output_tokens: int = 120,
        temperature: float = 0.9,
        timeout_ms: Optional[int] = 10000,
    ) -> None:
        self.system_prompt = system_prompt.strip()
        self.model_name = model_name
        self.api_key = api_key
        self.max_output_tokens = max_output_tokens
        self.temperature = temperature
        self.timeout_ms = timeout_ms
        self._client = None

    @property
    def client(self):
        # Built lazily so an app without GEMINI_API_KEY still starts.
        if self._client is None:
            http_options = types.HttpOptions(timeout=self.timeout_ms) if self.timeout_ms else None
            if self.api_key is not None:
                self._client = genai.Client(api_key=self.api_key, http_options=http_options)
            else:
                # Let the SDK read GEMINI_API_KEY / GOOGLE_API_KEY.
                self._client = genai.Client(http_options=http_options)
        return self._client

    @staticmethod
    def _extract_text(response) -> str:
        text = (getattr(response, "text", None) or "").strip()
        if text:
            return text

        # Reconstruct from candidates if .text is empty.
        text_parts: List[str] = []
        for cand in getattr(response, "candidates", None) or []:
            content = getattr(cand, "content", None)
            if not content:
                continue
            for part in getattr(content, "parts", None) or []:
                part_text = getattr(part, "text", None)
                if part_text:
                    text_parts.append(part_text)
        return " ".join(text_parts).strip()

    def generate(self, prompt: str) -> str:
        """Call Gemini and return the trimmed commentary text."""
        config = types.GenerateContentConfig(
            system_instruction=self.system_prompt,
            max_output_tokens=self.max_output_tokens,
            temperature=self.temperature,
        )

        try:
            response = self.client.models.generate_content(
                model=self.model_name,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            raise ExternalServiceDegraded(self.service_name, str(e)) from e

        text = self._extract_text(response)
        if not text:
            raise ExternalServiceDegraded(self.service_name, "empty response")

        logger.debug(f"[LLMClient] {self.model_name} returned {len(text)} chars")
        return text
