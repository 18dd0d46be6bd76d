"""
Variable Engine - {placeholder} extraction and substitution.
Pure functions over nested content (strings, lists, dicts). No I/O.

A token is any run of characters other than '}' between '{' and '}'.
Literal braces cannot be escaped: every '{...}' in content is a slot.

Only string values are scanned. Mapping keys (e.g. objection_handling names)
are never read as tokens and never rewritten, so a '{x}' that appears only in
a key is not a variable. Legacy records whose stored variables were taken
from the serialized content can list such names; they drop out the next time
variables are re-derived.
"""

import re
from typing import Any, Dict, Iterator, List, Mapping

TOKEN_PATTERN = re.compile(r'\{([^}]+)\}')


def _iter_strings(content: Any) -> Iterator[str]:
    """Yield every string leaf in content, depth first, dict values in insertion order."""
    if isinstance(content, str):
        yield content
    elif isinstance(content, Mapping):
        for value in content.values():
            yield from _iter_strings(value)
    elif isinstance(content, (list, tuple)):
        for item in content:
            yield from _iter_strings(item)


def extract_variables(content: Any) -> List[str]:
    """
    Find every placeholder name in content.
    Returns unique names in first-occurrence order.
    """
    seen: Dict[str, None] = {}
    for text in _iter_strings(content):
        for name in TOKEN_PATTERN.findall(text):
            seen.setdefault(name, None)
    return list(seen)


def replace_in_string(text: str, values: Mapping[str, Any]) -> str:
    """Substitute tokens in a single string. Unknown tokens are left as written."""
    def _sub(match):
        name = match.group(1)
        value = values.get(name)
        if value is None:
            return match.group(0)
        return str(value)

    return TOKEN_PATTERN.sub(_sub, text)


def replace_variables(content: Any, values: Mapping[str, Any] = None) -> Any:
    """
    Return a copy of content with placeholders filled from values.

    Args:
        content: str, list, tuple, dict, or any nesting of them
        values: token name -> replacement; None values count as missing

    Returns: new structure of the same shape. Non-string leaves pass through;
    dict keys are never rewritten; the input is not modified.
    """
    values = values or {}

    if isinstance(content, str):
        return replace_in_string(content, values)
    if isinstance(content, Mapping):
        return {key: replace_variables(value, values) for key, value in content.items()}
    if isinstance(content, list):
        return [replace_variables(item, values) for item in content]
    if isinstance(content, tuple):
        return tuple(replace_variables(item, values) for item in content)
    return content
