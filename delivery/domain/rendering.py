"""Template rendering for message content and subjects.

Templates use `{{key}}` placeholders, optionally followed by filters
(`{{name|upper}}`). Before parsing, each placeholder is rewritten into a call
to a single lookup function, so parameter keys do not have to be valid
identifiers ("1", "first-name", "order.id" all work). The template then runs
in a sandboxed Jinja2 environment with no data context: the lookup function
is the only thing it can see.
"""

from __future__ import annotations

import json
import re
from typing import Mapping

from jinja2 import TemplateError
from jinja2.sandbox import SandboxedEnvironment

from ..errors import RenderError

LOOKUP_FUNCTION = "param"

# Bare placeholder: no quotes, parens, pipes, braces or inner whitespace, so
# real expressions like {{ param("x") }} are left alone.
_BARE_PLACEHOLDER_RE = re.compile(r"\{\{\s*([^\s{}\"'()|]+)\s*\}\}")
# Same leading token followed by a filter chain: {{ name|upper }}.
_FILTERED_PLACEHOLDER_RE = re.compile(r"\{\{(\s*)([^\s{}\"'()|]+)(\s*)\|")


def render_template(content: str, params: Mapping[str, str] | None, *, autoescape: bool = False) -> str:
    """Render `content` with `params`; unknown keys render as empty strings.

    Raises RenderError when the template is structurally invalid or fails
    while rendering (a bad call, a failing filter, a division by zero).
    """
    values = {str(key): "" if value is None else str(value) for key, value in (params or {}).items()}
    source = rewrite_placeholders(content or "", values)

    env = _build_environment(values, autoescape=autoescape)
    try:
        return env.from_string(source).render()
    except TemplateError as exc:
        raise RenderError(f"failed to render template: {exc}") from exc
    except Exception as exc:
        raise RenderError(f"failed to render template: {type(exc).__name__}: {exc}") from exc


def rewrite_placeholders(content: str, keys: Mapping[str, str]) -> str:
    """Turn `{{key}}` placeholders into lookup-function calls."""
    # Keys present in params first, longest first, so keys that contain
    # spaces or quotes are matched literally before the generic pass.
    for key in sorted(keys, key=len, reverse=True):
        literal = "{{" + key + "}}"
        if literal in content:
            content = content.replace(literal, _lookup_call(key))
    content = _FILTERED_PLACEHOLDER_RE.sub(
        lambda match: "{{" + match.group(1) + _lookup_expr(match.group(2)) + match.group(3) + "|", content
    )
    return _BARE_PLACEHOLDER_RE.sub(lambda match: _lookup_call(match.group(1)), content)


def _lookup_call(key: str) -> str:
    return "{{ " + _lookup_expr(key) + " }}"


def _lookup_expr(key: str) -> str:
    # json.dumps escapes are understood by the Jinja string-literal lexer.
    return LOOKUP_FUNCTION + "(" + json.dumps(key) + ")"


def _build_environment(values: Mapping[str, str], *, autoescape: bool) -> SandboxedEnvironment:
    env = SandboxedEnvironment(autoescape=autoescape, keep_trailing_newline=True)

    def lookup(key: str) -> str:
        return values.get(key, "")

    env.globals = {LOOKUP_FUNCTION: lookup}
    return env
