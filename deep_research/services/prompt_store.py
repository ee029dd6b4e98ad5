"""Prompt catalog for the research agents.

`prompts.json` maps agent -> operation -> {"system", "user"}. Each entry is a
string or a list of lines. The catalog is flattened into dotted keys such as
`researcher.plan.user` and checked on load, so a missing role instruction
surfaces at the first render rather than mid-run.
"""
from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any

PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"
PROMPT_ROLES = ("system", "user")

_catalog_cache: dict[str, Template] | None = None
_catalog_mtime_ns: int | None = None


def _entry_text(key: str, entry: Any) -> str:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, list) and all(isinstance(line, str) for line in entry):
        return "\n".join(entry)
    raise ValueError(f"Prompt '{key}' must be a string or a list of lines")


def _flatten_catalog(payload: Any) -> dict[str, Template]:
    if not isinstance(payload, dict):
        raise ValueError("Prompt catalog must be a JSON object")

    templates: dict[str, Template] = {}
    for agent, operations in payload.items():
        if not isinstance(operations, dict):
            raise ValueError(f"Prompt group '{agent}' must map operations to prompts")
        for operation, roles in operations.items():
            prefix = f"{agent}.{operation}"
            if not isinstance(roles, dict):
                raise ValueError(f"Prompt '{prefix}' must define {' and '.join(PROMPT_ROLES)}")
            missing = [role for role in PROMPT_ROLES if role not in roles]
            if missing:
                raise ValueError(f"Prompt '{prefix}' is missing: {', '.join(missing)}")
            for role, entry in roles.items():
                key = f"{prefix}.{role}"
                templates[key] = Template(_entry_text(key, entry))
    return templates


def _load_catalog() -> dict[str, Template]:
    global _catalog_cache, _catalog_mtime_ns
    mtime_ns = PROMPTS_PATH.stat().st_mtime_ns
    if _catalog_cache is not None and _catalog_mtime_ns == mtime_ns:
        return _catalog_cache

    catalog = _flatten_catalog(json.loads(PROMPTS_PATH.read_text(encoding="utf-8")))
    _catalog_cache = catalog
    _catalog_mtime_ns = mtime_ns
    return catalog


def prompt_keys() -> list[str]:
    """Every `<agent>.<operation>` pair in the catalog."""
    return sorted({key.rsplit(".", 1)[0] for key in _load_catalog()})


def render_prompt(key: str, **values: Any) -> str:
    template = _load_catalog().get(key)
    if template is None:
        raise KeyError(f"Prompt key not found: {key}")
    try:
        return template.substitute(**values)
    except KeyError as exc:
        missing = str(exc.args[0])
        raise KeyError(f"Missing template value '{missing}' for prompt '{key}'") from exc


def clear_prompt_cache() -> None:
    global _catalog_cache, _catalog_mtime_ns
    _catalog_cache = None
    _catalog_mtime_ns = None
