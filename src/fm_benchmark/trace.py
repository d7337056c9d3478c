"""
Ground-truth token counts from external trace exports.

Two export shapes are accepted:

- XML table exports (as produced by ``xctrace export``), where the first
  ``<row>`` carries ``<promptTokens>``, ``<responseTokens>`` and
  ``<totalTokens>`` elements. Values repeated across rows may be written as
  ``<promptTokens ref="7"/>`` pointing at an earlier element with ``id="7"``.
- JSON objects (or lists of objects) with ``promptTokens``, ``responseTokens``
  and ``totalTokens`` fields.

Individual fields that are missing or not numeric count as 0. A file that
cannot be read or parsed at all raises ImportParseError.
"""

import json
import math
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .exceptions import ImportParseError
from .logging import get_logger
from .models import ActualTokenCounts


logger = get_logger(__name__)


TOKEN_FIELDS = ("promptTokens", "responseTokens", "totalTokens")


def parse_trace_export(path: Union[str, Path]) -> ActualTokenCounts:
    """
    Read actual token counts from a trace export file.

    Args:
        path: Path to an XML or JSON export

    Returns:
        ActualTokenCounts from the first data row

    Raises:
        ImportParseError: If the file is missing, unreadable, malformed, or has no rows
    """
    path = Path(path)

    try:
        content = path.read_bytes()
    except OSError as e:
        raise ImportParseError(f"Failed to read trace export {path}: {e}", path=str(path)) from e

    if path.suffix.lower() == ".json":
        row = _first_json_row(content, path)
    else:
        row = _first_xml_row(content, path)

    counts = counts_from_row(row)
    logger.info(
        "Trace export parsed",
        path=str(path),
        prompt_tokens=counts.prompt_tokens,
        response_tokens=counts.response_tokens,
        total_tokens=counts.total_tokens
    )
    return counts


def counts_from_row(row: Mapping[str, Any]) -> ActualTokenCounts:
    """Build ActualTokenCounts from a row of raw field values."""
    return ActualTokenCounts(
        prompt_tokens=coerce_count(row.get("promptTokens")),
        response_tokens=coerce_count(row.get("responseTokens")),
        total_tokens=coerce_count(row.get("totalTokens"))
    )


def coerce_count(value: Any) -> int:
    """Convert a decimal string or number to an int; anything else is 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return 0
    return 0


def _first_xml_row(content: bytes, path: Path) -> Dict[str, Optional[str]]:
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise ImportParseError(f"Malformed trace export {path}: {e}", path=str(path)) from e

    row = root if root.tag == "row" else root.find(".//row")
    if row is None:
        raise ImportParseError(f"No data found in trace export {path}", path=str(path))

    elements_by_id = {
        element.get("id"): element for element in root.iter() if element.get("id") is not None
    }

    values: Dict[str, Optional[str]] = {}
    for name in TOKEN_FIELDS:
        element = row.find(name)
        if element is None:
            continue
        ref = element.get("ref")
        if ref is not None and ref in elements_by_id:
            element = elements_by_id[ref]
        text = (element.text or "").strip()
        values[name] = text or element.get("fmt")
    return values


def _first_json_row(content: bytes, path: Path) -> Mapping[str, Any]:
    try:
        data = json.loads(content)
    except ValueError as e:
        raise ImportParseError(f"Malformed trace export {path}: {e}", path=str(path)) from e

    if isinstance(data, Mapping) and isinstance(data.get("rows"), list):
        data = data["rows"]

    if isinstance(data, list):
        data = next((item for item in data if isinstance(item, Mapping)), None)

    if not isinstance(data, Mapping):
        raise ImportParseError(f"No data found in trace export {path}", path=str(path))
    return data
