"""Brazilian address parsing for Shopee order payloads.

Shopee sends the recipient address as one free-text line, e.g.
``"Rua das Flores, 123 - Centro - São Paulo 01310-100"``.
"""

import re
from datetime import datetime, timezone

_CEP_RE = re.compile(r"\b\d{5}-?\d{3}\b")
_STREET_NUMBER_RE = re.compile(r"^(.+?)[, ]+(\d+\w*)")
_NOT_NEIGHBORHOOD_RE = re.compile(r"\b(cidade|estado|uf)\b", re.IGNORECASE)


def parse_br_address(address: str | None) -> dict[str, str | None]:
    """Split a one-line address into street name, number and neighborhood."""
    parts_out: dict[str, str | None] = {
        "street_name": None,
        "street_number": None,
        "neighborhood_name": None,
    }
    if not address:
        return parts_out

    text = address.strip()
    cep = _CEP_RE.search(text)
    cleaned = (text.replace(cep.group(0), "", 1) if cep else text).strip()
    segments = re.split(r"\s*-\s*", cleaned)
    first = (segments[0] or cleaned).strip()

    match = _STREET_NUMBER_RE.match(first)
    if match:
        parts_out["street_name"] = match.group(1).strip()
        parts_out["street_number"] = match.group(2).strip()
    else:
        name_match = re.match(r"^(.+?)(?:,|$)", first)
        if name_match:
            parts_out["street_name"] = name_match.group(1).strip()
        number_match = re.search(r"(\d+\w*)", first)
        if number_match:
            parts_out["street_number"] = number_match.group(1).strip()

    if len(segments) > 1:
        neighborhood = segments[1].strip()
        if neighborhood and not _NOT_NEIGHBORHOOD_RE.search(neighborhood):
            parts_out["neighborhood_name"] = neighborhood

    return {key: (value or None) for key, value in parts_out.items()}


def to_iso_from_epoch_sec(value: str | int | float | None) -> str | None:
    """Unix seconds to an ISO-8601 UTC string (``...Z``)."""
    if value is None or value == "":
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if seconds != seconds or seconds in (float("inf"), float("-inf")):
        return None
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
