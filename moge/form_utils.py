"""Feed JSON request bodies to Flask-WTF forms."""
from __future__ import annotations

from typing import Any, Dict, Optional

from flask import request
from werkzeug.datastructures import MultiDict


def json_payload() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def json_formdata(payload: Optional[Dict[str, Any]] = None) -> MultiDict:
    """Return the JSON body as form data.

    Nulls mean "not provided". Every other value reaches the fields as text,
    the way a submitted HTML form would, so validators such as ``Length``
    never see a number.
    """

    if payload is None:
        payload = json_payload()
    data = MultiDict()
    for key, value in payload.items():
        if value is None:
            continue
        if isinstance(value, list):
            for item in value:
                if item is not None:
                    data.add(key, _as_text(item))
        else:
            data.add(key, _as_text(value))
    return data


__all__ = ["json_formdata", "json_payload"]
