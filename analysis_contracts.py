import re
from typing import Any, Dict, List, Tuple

from config import GateConfig

SNAKE_CASE_PATTERN = re.compile(r"\b[a-z0-9]+(?:_[a-z0-9]+)+\b")
PLACEHOLDER_STRINGS = {
    "Chart title",
    "Example title",
    "Example label",
    "Lorem ipsum",
    "[title]",
    "[insight]",
    "TODO",
}
ACTIONS = {"show_chart", "text_only", "show_table"}
HUMAN_FIELDS = ("title", "message")
REQUIRED_CHART_KEYS = ("chart_type", "title", "data", "xKey", "yKey", "source")
KEY_ALIASES = {"xKey": "x_key", "yKey": "y_key"}


def _walk_strings(node: Any, path: str = "") -> List[Tuple[str, str]]:
    results: List[Tuple[str, str]] = []
    if isinstance(node, str):
        results.append((path, node))
    elif isinstance(node, list):
        for idx, value in enumerate(node):
            child_path = f"{path}[{idx}]" if path else f"[{idx}]"
            results.extend(_walk_strings(value, child_path))
    elif isinstance(node, dict):
        for key, value in node.items():
            child_path = f"{path}.{key}" if path else key
            results.extend(_walk_strings(value, child_path))
    return results


def _contains_placeholder(text: str) -> bool:
    return any(placeholder in text for placeholder in PLACEHOLDER_STRINGS)


def _find_illegal_snake_case(text: str) -> List[str]:
    return [token for token in SNAKE_CASE_PATTERN.findall(text)]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _y_keys(payload: Dict[str, Any]) -> List[Any]:
    y_key = payload.get("yKey", payload.get("y_key"))
    if isinstance(y_key, list):
        return y_key
    return [] if y_key is None else [y_key]


def lint_chart_payload(payload: Dict[str, Any]) -> List[str]:
    """Return a list of contract violations for a model-emitted chart payload."""

    errors: List[str] = []

    if not isinstance(payload, dict):
        return ["Chart payload must be a dictionary."]

    action = payload.get("action")
    if action not in ACTIONS:
        errors.append(f"action must be one of {sorted(ACTIONS)} (got {action!r}).")
    if action != "show_chart":
        return errors

    for key in REQUIRED_CHART_KEYS:
        if key not in payload and KEY_ALIASES.get(key) not in payload:
            errors.append(f"Missing top-level key: {key}")

    chart_type = payload.get("chart_type")
    known_types = {chart for charts in GateConfig.ALLOWED_CHART_TYPES.values() for chart in charts}
    if not isinstance(chart_type, str) or chart_type not in known_types:
        errors.append(f"chart_type must be one of {sorted(known_types)} (got {chart_type!r}).")

    title = payload.get("title")
    if not isinstance(title, str) or not title.strip():
        errors.append("title must be a non-empty string.")

    x_key = payload.get("xKey", payload.get("x_key"))
    if not isinstance(x_key, str) or not x_key:
        errors.append("xKey must be a non-empty string.")
        x_key = None

    y_keys = _y_keys(payload)
    if not y_keys or not all(isinstance(key, str) and key for key in y_keys):
        errors.append("yKey must be a non-empty string or list of strings.")
        y_keys = []

    data = payload.get("data", [])
    if not isinstance(data, list):
        errors.append("data must be a list.")
        data = []
    if len(data) == 0:
        errors.append("data must contain at least one row.")

    for idx, row in enumerate(data):
        row_path = f"data[{idx}]"
        if not isinstance(row, dict):
            errors.append(f"{row_path} must be an object.")
            continue
        if x_key and x_key not in row:
            errors.append(f"{row_path}.{x_key} is missing.")
        for y_key in y_keys:
            if y_key not in row:
                errors.append(f"{row_path}.{y_key} is missing.")
            elif not _is_number(row[y_key]):
                errors.append(f"{row_path}.{y_key} must be numeric (got {row[y_key]!r}).")

    source = payload.get("source")
    if not isinstance(source, str) or not source.strip():
        errors.append("source must be a non-empty string.")

    for path, text in _walk_strings(payload):
        if path not in HUMAN_FIELDS:
            continue
        if _contains_placeholder(text):
            errors.append(f"{path} contains placeholder text: {text!r}")
        snake_tokens = _find_illegal_snake_case(text)
        if snake_tokens:
            errors.append(f"{path} contains snake_case tokens that look like internal ids: {snake_tokens}")

    return errors


__all__ = ["lint_chart_payload"]
