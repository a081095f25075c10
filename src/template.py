"""Placeholder substitution for plugin manifest templates.

Templates reference parameters as {{name}}. Whitespace inside the braces
and a leading dot ({{ .name }}) are accepted.

String values are inserted verbatim. All other values are inserted as
JSON, which is also valid YAML flow syntax, so numbers, booleans,
null, lists and mappings decode back to the same value.
"""

import json
import re
from typing import Any

from common import ControllerError

PLACEHOLDER_RE = re.compile(r'\{\{\s*\.?([A-Za-z_][A-Za-z0-9_-]*)\s*\}\}')


class TemplateResolutionError(ControllerError):
    """Template references placeholders with no supplied value."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__("E412", f"Unresolved placeholders: {', '.join(missing)}")


def find_placeholders(text: str) -> list[str]:
    """Return placeholder names in order of first appearance."""
    names: list[str] = []
    for match in PLACEHOLDER_RE.finditer(text):
        if match.group(1) not in names:
            names.append(match.group(1))
    return names


def format_value(value: Any) -> str:
    """Textual form of a parameter value."""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def render_template(text: str, params: dict[str, Any]) -> str:
    """Replace every placeholder in text with its value from params.

    Raises:
        TemplateResolutionError: If any placeholder has no entry in params
    """
    missing = [name for name in find_placeholders(text) if name not in params]
    if missing:
        raise TemplateResolutionError(missing)

    return PLACEHOLDER_RE.sub(lambda m: format_value(params[m.group(1)]), text)
