"""AI writing assistance for chapters: continue, polish and expand."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy.orm import Session

from ..models import Chapter, Manuscript
from .errors import AssistanceError, InvalidRequestError
from .lore import build_settings_context, resolve_for_manuscript
from .structure import get_owned_chapter

PROMPT_CACHE_KEY = "_PROMPT_CONFIG_CACHE"
GENERATOR_KEY = "_TEXT_GENERATOR_INSTANCE"

PROMPT_KEY_CONTINUE = "chapter_continue"
PROMPT_KEY_POLISH = "chapter_polish"
PROMPT_KEY_EXPAND = "chapter_expand"

_GENERATION_PARAMETER_KEYS = {"max_new_tokens", "temperature", "top_p"}


@dataclass
class AssistRequest:
    system_prompt: str
    prompt: str
    parameters: Dict[str, Any]


def continue_chapter(
    session: Session,
    chapter_id: int,
    user_id: int,
    *,
    custom_prompt: Optional[str] = None,
) -> str:
    """Continue the chapter from the tail of its current body."""

    chapter, manuscript = get_owned_chapter(session, chapter_id, user_id)
    body = chapter.content.body if chapter.content is not None else ""
    tail_chars = int(current_app.config.get("ASSIST_CONTEXT_CHARS", 2000))
    recent_text = body[-tail_chars:] if tail_chars > 0 else body

    request = build_request(
        PROMPT_KEY_CONTINUE,
        manuscript_name=manuscript.name,
        chapter_title=chapter.title,
        settings_context=_settings_context(session, manuscript),
        recent_text=recent_text or "（本章暂无内容，请从头开始写作。）",
        custom_prompt=_custom_instruction(custom_prompt),
    )
    return _complete(request, chapter)


def polish_text(
    session: Session,
    chapter_id: int,
    user_id: int,
    passage: str,
    *,
    custom_prompt: Optional[str] = None,
) -> str:
    return _rewrite(PROMPT_KEY_POLISH, session, chapter_id, user_id, passage, custom_prompt)


def expand_text(
    session: Session,
    chapter_id: int,
    user_id: int,
    passage: str,
    *,
    custom_prompt: Optional[str] = None,
) -> str:
    return _rewrite(PROMPT_KEY_EXPAND, session, chapter_id, user_id, passage, custom_prompt)


def _rewrite(
    prompt_key: str,
    session: Session,
    chapter_id: int,
    user_id: int,
    passage: str,
    custom_prompt: Optional[str],
) -> str:
    chapter, manuscript = get_owned_chapter(session, chapter_id, user_id)
    cleaned = (passage or "").strip()
    if not cleaned:
        raise InvalidRequestError("Select some text or write chapter content first.")

    request = build_request(
        prompt_key,
        manuscript_name=manuscript.name,
        settings_context=_settings_context(session, manuscript),
        passage=cleaned,
        custom_prompt=_custom_instruction(custom_prompt),
    )
    return _complete(request, chapter)


def _settings_context(session: Session, manuscript: Manuscript) -> str:
    return build_settings_context(resolve_for_manuscript(session, manuscript))


def _custom_instruction(custom_prompt: Optional[str]) -> str:
    cleaned = (custom_prompt or "").strip()
    return f"\n额外要求：{cleaned}" if cleaned else ""


def build_request(prompt_key: str, **fields: str) -> AssistRequest:
    entry = _load_prompt_entry(prompt_key)
    template = entry.get("prompt_template")
    if not template:
        current_app.logger.warning("Prompt configuration '%s' has no template.", prompt_key)
        raise AssistanceError()
    try:
        prompt = template.format(**fields)
    except (KeyError, IndexError) as exc:
        current_app.logger.warning("Prompt template '%s' references an unknown field: %s", prompt_key, exc)
        raise AssistanceError() from exc
    return AssistRequest(
        system_prompt=str(entry.get("system_prompt") or ""),
        prompt=prompt,
        parameters=_extract_generation_parameters(entry.get("parameters")),
    )


def _complete(request: AssistRequest, chapter: Chapter) -> str:
    generator = _get_text_generator()
    if generator is None:
        raise AssistanceError()

    try:
        text = generator.generate_response(
            request.prompt,
            system_prompt=request.system_prompt or None,
            **request.parameters,
        )
    except Exception as exc:  # the collaborator's failure detail is never surfaced
        current_app.logger.exception("Writing assistant failed for chapter %s", chapter.id)
        raise AssistanceError() from exc

    text = (text or "").strip()
    if not text:
        current_app.logger.warning("Writing assistant returned an empty response for chapter %s", chapter.id)
        raise AssistanceError()
    return text


def _load_prompt_entry(key: str) -> Dict[str, Any]:
    config = _load_prompt_config()
    entry = config.get(key)
    if not isinstance(entry, dict):
        current_app.logger.warning("Prompt configuration is missing the '%s' entry.", key)
        raise AssistanceError()
    return entry


def _load_prompt_config() -> Dict[str, Any]:
    app = current_app
    cached = app.config.get(PROMPT_CACHE_KEY)
    if isinstance(cached, dict):
        return cached

    config_path = app.config.get("PROMPT_CONFIG_PATH")
    if not config_path:
        app.logger.warning("PROMPT_CONFIG_PATH is not configured.")
        raise AssistanceError()

    path = Path(config_path)
    if not path.exists():
        app.logger.warning("Prompt configuration file not found at: %s", path)
        raise AssistanceError()

    with path.open("r", encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except json.JSONDecodeError as exc:
            app.logger.warning("Unable to parse prompt configuration: %s", exc.msg)
            raise AssistanceError() from exc

    if not isinstance(data, dict):
        app.logger.warning("Prompt configuration must be a JSON object.")
        raise AssistanceError()

    app.config[PROMPT_CACHE_KEY] = data
    return data


def _extract_generation_parameters(parameters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Filter a raw parameters dictionary to generation kwargs supported by the client."""

    if not isinstance(parameters, dict):
        return {}

    kwargs: Dict[str, Any] = {}
    for key in _GENERATION_PARAMETER_KEYS:
        if key in parameters and parameters[key] is not None:
            kwargs[key] = parameters[key]
    return kwargs


def _get_text_generator() -> Optional[Any]:  # pragma: no cover - integration point
    app = current_app
    if GENERATOR_KEY in app.config:
        return app.config[GENERATOR_KEY]

    api_key = app.config.get("OPENAI_API_KEY")
    if not api_key:
        app.logger.info("OPENAI_API_KEY not configured; the writing assistant is disabled.")
        app.config[GENERATOR_KEY] = None
        return None

    try:
        from ..api_handler import ChatCompletionGenerator

        app.logger.info("Initialising writing assistant with model: %s", app.config.get("ASSIST_MODEL_NAME"))
        generator = ChatCompletionGenerator(
            app.config.get("ASSIST_MODEL_NAME", ""),
            api_key,
            base_url=app.config.get("ASSIST_API_BASE"),
            default_max_tokens=app.config.get("ASSIST_MAX_TOKENS", 2000),
        )
    except Exception as exc:
        app.logger.warning("Failed to initialise the writing assistant: %s", exc)
        generator = None
    app.config[GENERATOR_KEY] = generator
    return generator


__all__ = ["build_request", "continue_chapter", "expand_text", "polish_text"]
