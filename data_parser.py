"""
Deterministic text-to-dataset parser.

Turns "Januari 500jt, Februari 600jt, Maret 750jt" or "Produk A: 100, Produk B: 200"
into a candidate Dataset. The parser is the source of truth for numbers the user
typed; model output is checked against it with ``validate_against_parser``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import Field

from models import UNIT_MULTIPLIERS, ChartPayload, DataPoint, Dataset, ModelResponse, Unit

logger = logging.getLogger(__name__)

MIN_POINTS_ERROR = "Minimum two points required for visualization"
NO_DATA_FOUND_ERROR = "No structured data found in input"

MONTH_MAP: Dict[str, str] = {
    "januari": "Januari",
    "februari": "Februari",
    "maret": "Maret",
    "april": "April",
    "mei": "Mei",
    "juni": "Juni",
    "juli": "Juli",
    "agustus": "Agustus",
    "september": "September",
    "oktober": "Oktober",
    "november": "November",
    "desember": "Desember",
    "jan": "Januari",
    "feb": "Februari",
    "mar": "Maret",
    "apr": "April",
    "jun": "Juni",
    "jul": "Juli",
    "agu": "Agustus",
    "agt": "Agustus",
    "sep": "September",
    "okt": "Oktober",
    "nov": "November",
    "des": "Desember",
    "january": "Januari",
    "february": "Februari",
    "march": "Maret",
    "may": "Mei",
    "june": "Juni",
    "july": "Juli",
    "august": "Agustus",
    "october": "Oktober",
    "december": "Desember",
}

QUARTER_MAP: Dict[str, str] = {
    "q1": "Q1",
    "q2": "Q2",
    "q3": "Q3",
    "q4": "Q4",
    "kuartal 1": "Q1",
    "kuartal 2": "Q2",
    "kuartal 3": "Q3",
    "kuartal 4": "Q4",
}

MONTH_TYPOS: Dict[str, str] = {
    "januri": "januari",
    "januray": "januari",
    "janauri": "januari",
    "jnuari": "januari",
    "febuari": "februari",
    "pebruari": "februari",
    "febuary": "februari",
    "feburari": "februari",
    "marer": "maret",
    "martet": "maret",
    "aprill": "april",
    "aprl": "april",
    "junni": "juni",
    "jni": "juni",
    "jully": "juli",
    "julli": "juli",
    "agusutus": "agustus",
    "agusts": "agustus",
    "agstus": "agustus",
    "septmber": "september",
    "setember": "september",
    "sepetember": "september",
    "okotber": "oktober",
    "oktber": "oktober",
    "ocktober": "oktober",
    "novmber": "november",
    "noveber": "november",
    "desemeber": "desember",
    "descember": "desember",
    "desembr": "desember",
}

# Only full names take part in fuzzy matching; short forms are too close to ordinary words
_FUZZY_MONTHS = [name for name in MONTH_MAP if len(name) >= 5]

FILLER_WORDS = {
    "tampilkan", "buatkan", "buat", "tolong", "data", "penjualan", "grafik", "chart",
    "dan", "atau", "dengan", "untuk", "dari", "ke", "di", "adalah", "dalam", "menampilkan",
    "show", "make", "please", "sales", "and", "for", "of",
}

_UNIT_SUFFIXES: List[Tuple[re.Pattern, Unit]] = [
    (re.compile(r"^([\d.]+)(?:miliar|milyar|b)$"), Unit.BILLION),
    (re.compile(r"^([\d.]+)(?:jt|juta|m)$"), Unit.MILLION),
    (re.compile(r"^([\d.]+)(?:rb|ribu|k)$"), Unit.THOUSAND),
    (re.compile(r"^([\d.]+)$"), Unit.UNIT),
]
_UNIT_WORDS = r"(?:juta|jt|miliar|milyar|ribu|rb|k|m|b)(?![a-z])"
_VALUE_PATTERN = rf"(\d[\d.,]*(?:\s*{_UNIT_WORDS})?)"
_PERIOD_PATTERN = "(" + "|".join(
    re.escape(key) for key in sorted(list(MONTH_MAP) + list(QUARTER_MAP), key=len, reverse=True)
) + ")"
MONTH_VALUE_RE = re.compile(rf"\b{_PERIOD_PATTERN}[\s:,=]+{_VALUE_PATTERN}", re.IGNORECASE)
LABEL_VALUE_RE = re.compile(rf"([A-Za-zÀ-ÿ][A-Za-zÀ-ÿ0-9\s]*?)\s*[:=\s]+\s*{_VALUE_PATTERN}", re.IGNORECASE)
COMPARISON_RE = re.compile(r"banding|compare|\bvs\b|versus|perbandingan", re.IGNORECASE)
MARKET_SHARE_RE = re.compile(r"market.?share|pangsa.?pasar|distribusi|porsi|persentase|%", re.IGNORECASE)


class ParsedDataset(Dataset):
    """Dataset plus the parser's bookkeeping."""

    parse_method: str = Field(default="none", alias="parseMethod")
    detected_labels: List[str] = Field(default_factory=list, alias="detectedLabels")
    is_comparison: bool = Field(default=False, alias="isComparison")
    original_input: str = Field(default="", alias="originalInput")


@dataclass
class ParserCheck:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _clean_number_text(text: str) -> str:
    cleaned = re.sub(r"\s+", "", text.lower().strip()).rstrip(",.")
    dots = cleaned.count(".")
    if dots >= 2:
        # Indonesian grouping: 1.500.000
        cleaned = cleaned.replace(".", "")
    elif dots == 1:
        integer, _, rest = cleaned.partition(".")
        # 1.500 is fifteen hundred, 1.500jt stays one and a half million
        if len(rest) == 3 and rest.isdigit() and integer.isdigit():
            cleaned = cleaned.replace(".", "")
    commas = cleaned.count(",")
    if commas == 1 and re.search(r"\d,\d{1,2}(?!\d)", cleaned):
        # decimal comma: 1,5jt
        cleaned = cleaned.replace(",", ".")
    else:
        cleaned = cleaned.replace(",", "")
    return cleaned


def parse_number(text: str) -> Optional[Tuple[float, Unit]]:
    """Parse "500jt", "0.9B", "1.500.000" or "2 miliar" into (value, unit)."""
    if not text or not text.strip():
        return None
    cleaned = _clean_number_text(text)
    for pattern, unit in _UNIT_SUFFIXES:
        match = pattern.match(cleaned)
        if match:
            try:
                return float(match.group(1)) * UNIT_MULTIPLIERS[unit], unit
            except ValueError:
                break
    fallback = re.search(r"\d+(?:\.\d+)?", cleaned)
    if fallback:
        return float(fallback.group(0)), Unit.UNIT
    return None


def levenshtein(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j - 1] + cost, current[j - 1] + 1, previous[j] + 1))
        previous = current
    return previous[-1]


def normalize_label(label: str) -> str:
    """Canonical month / quarter name, typo-corrected, else title case."""
    stripped = re.sub(r"\s+", " ", label.strip())
    lower = stripped.lower()
    lower = MONTH_TYPOS.get(lower, lower)
    if lower in MONTH_MAP:
        return MONTH_MAP[lower]
    if lower in QUARTER_MAP:
        return QUARTER_MAP[lower]
    if len(lower) >= 3 and " " not in lower:
        best = min(_FUZZY_MONTHS, key=lambda month: levenshtein(lower, month))
        if levenshtein(lower, best) <= 2:
            logger.debug("Label %r corrected to %s", label, MONTH_MAP[best])
            return MONTH_MAP[best]
    return " ".join(word.capitalize() for word in stripped.split(" "))


def is_period_label(label: str) -> bool:
    return label in MONTH_MAP.values() or label in QUARTER_MAP.values()


def _strip_fillers(label: str) -> str:
    words = label.split()
    while words and words[0].lower() in FILLER_WORDS:
        words.pop(0)
    return " ".join(words)


def _collect(matches, clean_label) -> Tuple[List[DataPoint], List[Unit]]:
    points: List[DataPoint] = []
    units: List[Unit] = []
    seen = set()
    for match in matches:
        raw_label = clean_label(match.group(1))
        raw_value = match.group(2).strip().rstrip(",.")
        if not raw_label:
            continue
        parsed = parse_number(raw_value)
        if parsed is None:
            continue
        label = normalize_label(raw_label)
        if label.lower() in seen:
            # first occurrence wins
            continue
        seen.add(label.lower())
        value, unit = parsed
        points.append(DataPoint(label=label, value=value, raw_value=raw_value))
        units.append(unit)
    return points, units


def _label_value_label(raw: str) -> str:
    label = _strip_fillers(raw.strip())
    if len(label) < 2 or label.lower() in FILLER_WORDS:
        return ""
    return label


def infer_units(points: List[DataPoint], units: List[Unit]) -> Tuple[List[DataPoint], Optional[Unit], List[str]]:
    """Apply a majority unit to bare numbers ("500jt, 600, 750jt")."""
    total = len(points)
    counts: Dict[Unit, int] = {}
    for unit in units:
        if unit is not Unit.UNIT:
            counts[unit] = counts.get(unit, 0) + 1
    bare = [idx for idx, unit in enumerate(units) if unit is Unit.UNIT]
    dominant = next((unit for unit, count in counts.items() if count >= total / 2), None)
    if dominant is None or not bare or len(bare) == total:
        return points, None, []

    warnings: List[str] = []
    updated = list(points)
    multiplier = UNIT_MULTIPLIERS[dominant]
    for idx in bare:
        point = points[idx]
        value = point.value * multiplier
        updated[idx] = point.model_copy(update={"value": value})
        warnings.append(f"{point.label}: unit assumed to be {dominant.value} ({point.raw_value} -> {value:,.0f})")
    logger.info("Applied unit %s to %d values without a unit", dominant.value, len(bare))
    return updated, dominant, warnings


def extract_dataset(text: str) -> ParsedDataset:
    """Extract a dataset from free text. Month/quarter pairs first, then generic label: value."""
    text = text or ""
    is_comparison = bool(COMPARISON_RE.search(text))
    strategies = [
        ("month_value", MONTH_VALUE_RE, lambda raw: raw.strip()),
        ("label_value", LABEL_VALUE_RE, _label_value_label),
    ]
    best: Tuple[List[DataPoint], List[Unit]] = ([], [])
    for method, pattern, clean_label in strategies:
        points, units = _collect(pattern.finditer(text), clean_label)
        if len(points) >= 2:
            points, inferred, warnings = infer_units(points, units)
            first_unit = next((unit for unit in units if unit is not Unit.UNIT), None)
            logger.debug("Parser strategy %s found %d points", method, len(points))
            return ParsedDataset(
                success=True,
                data_points=points,
                detected_unit=inferred or first_unit,
                warnings=warnings,
                parse_method=method,
                detected_labels=[point.label for point in points],
                is_comparison=is_comparison,
                original_input=text,
            )
        if len(points) > len(best[0]):
            best = (points, units)

    points = best[0]
    logger.info("Parser found %d point(s) in input", len(points))
    return ParsedDataset(
        success=False,
        data_points=points,
        errors=[MIN_POINTS_ERROR if points else NO_DATA_FOUND_ERROR],
        parse_method="none",
        detected_labels=[point.label for point in points],
        is_comparison=is_comparison,
        original_input=text,
    )


def dataset_to_chart(
    dataset: Dataset,
    title: Optional[str] = None,
    chart_type: Optional[str] = None,
    message: str = "",
) -> ChartPayload:
    """Render-ready chart built from parsed numbers only."""
    labels = dataset.labels
    x_key = "month" if any(is_period_label(label) for label in labels) else "label"
    if chart_type is None:
        if MARKET_SHARE_RE.search(getattr(dataset, "original_input", "")):
            chart_type = "pie"
        elif len(labels) >= 6 or x_key == "month":
            chart_type = "line"
        else:
            chart_type = "bar"
    return ChartPayload(
        chart_type=chart_type,
        title=title or (f"Data {labels[0]} - {labels[-1]}" if labels else "Data"),
        message=message,
        data=[{x_key: point.label, "value": point.value} for point in dataset.data_points],
        x_key=x_key,
        y_key="value",
        source="internal",
        unit=dataset.detected_unit.value if dataset.detected_unit else None,
    )


def validate_against_parser(
    parsed: ParsedDataset,
    model_output: Union[ModelResponse, Mapping[str, Any]],
) -> ParserCheck:
    """Model chart data must carry exactly the labels the user typed, one series per period."""
    if not parsed.success:
        return ParserCheck(valid=True, warnings=["User input could not be parsed for validation"])

    if isinstance(model_output, ModelResponse):
        data, x_key, y_keys = model_output.data, model_output.x_key, model_output.y_keys
    else:
        data = model_output.get("data")
        x_key = model_output.get("xKey") or model_output.get("x_key")
        raw_y = model_output.get("yKey") or model_output.get("y_key")
        y_keys = list(raw_y) if isinstance(raw_y, list) else ([raw_y] if raw_y else [])

    if not isinstance(data, list):
        return ParserCheck(valid=False, errors=["Model output has no data array"])

    errors: List[str] = []
    if len(data) != len(parsed.data_points):
        errors.append(f"Data count mismatch: user={len(parsed.data_points)}, model={len(data)}")

    first_row = data[0] if data and isinstance(data[0], dict) else {}
    x_key = x_key or next(iter(first_row), None)
    model_labels = [
        str(row.get(x_key) or "").lower() if isinstance(row, dict) else "" for row in data
    ]
    user_labels = [label.lower() for label in parsed.detected_labels]

    def related(a: str, b: str) -> bool:
        return a == b or a in b or b in a

    for label in user_labels:
        if not any(related(label, model_label) for model_label in model_labels if model_label):
            errors.append(f'Label "{label}" from the user input is missing in the model output')
    for model_label in model_labels:
        if model_label and not any(related(label, model_label) for label in user_labels):
            errors.append(f'Model invented label "{model_label}" not present in the user input')

    if len(y_keys) > 1 and not parsed.is_comparison:
        errors.append(f"Model produced {len(y_keys)} series but the user gave one value per period")

    return ParserCheck(valid=not errors, errors=errors)


__all__ = [
    "ParsedDataset",
    "ParserCheck",
    "parse_number",
    "normalize_label",
    "levenshtein",
    "infer_units",
    "extract_dataset",
    "dataset_to_chart",
    "validate_against_parser",
    "MONTH_MAP",
    "QUARTER_MAP",
]
