"""OpenAI-compatible chat completion client used by the writing assistant."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import openai

LOGGER = logging.getLogger(__name__)

_DEBUG_SNIPPET_LIMIT = 1200


def completion_text(response: Any) -> str:
    """Return the text of the first choice, joining content parts if the
    provider answers with a list of typed parts instead of a plain string."""

    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = message.get("content") if isinstance(message, dict) else getattr(message, "content", None)
    if isinstance(content, list):
        texts = [
            str(part.get("text") or "")
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        ]
        return "\n".join(text for text in texts if text)
    return str(content or "")


def _truncate_for_log(raw: str) -> str:
    flat = raw.replace("\n", " ")
    if len(flat) <= _DEBUG_SNIPPET_LIMIT:
        return flat
    return flat[:_DEBUG_SNIPPET_LIMIT] + "…"


class ChatCompletionGenerator:
    """
    Thin wrapper over the Chat Completions API.

    Any OpenAI-compatible endpoint works by passing ``base_url``. The
    assistant needs a single call shape: an optional system instruction and
    one user prompt in, one text string out.
    """

    def __init__(
        self,
        model_name: str,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        default_max_tokens: int = 2000,
    ) -> None:
        self.model_name = (model_name or "").strip()
        if not self.model_name:
            raise ValueError("A model name is required for the writing assistant.")
        key = (api_key or "").strip()
        if not key:
            raise ValueError("An API key is required for the writing assistant.")
        self.default_max_tokens = int(default_max_tokens or 2000)

        options: Dict[str, Any] = {"api_key": key}
        if base_url:
            options["base_url"] = base_url
        self._client = openai.OpenAI(**options)

    def generate_response(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        max_new_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
    ) -> str:
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("The prompt must be a non-empty string.")
        limit = self.default_max_tokens if max_new_tokens is None else int(max_new_tokens)
        if limit <= 0:
            raise ValueError("max_new_tokens must be a positive integer.")

        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        request: Dict[str, Any] = {"model": self.model_name, "messages": messages, "max_tokens": limit}
        if temperature is not None:
            request["temperature"] = float(temperature)
        if top_p is not None:
            request["top_p"] = float(top_p)

        LOGGER.debug("Requesting chat completion from %s (max_tokens=%s)", self.model_name, limit)
        response = self._client.chat.completions.create(**request)
        text = completion_text(response).strip()
        if not text:
            LOGGER.warning(
                "Chat completion from %s contained no text: %s",
                self.model_name,
                _truncate_for_log(str(response)),
            )
            raise RuntimeError("The chat completion response contained no text.")
        return text
