"""NF-e (Brazilian electronic invoice) helpers.

Covers field extraction from authorized XML, Focus NF-e status mapping
and display labels used by the invoices API.

Reference: https://focusnfe.com.br/doc/
"""

import base64
import binascii
import re
from decimal import Decimal
from typing import Any, Mapping

FOCUS_BASE_URL = "https://api.focusnfe.com.br"

_NNF_RE = re.compile(r"<nNF>(\d+)</nNF>")
_ID_KEY_RE = re.compile(r'Id="NFe(\d{44})"')
_CHNFE_RE = re.compile(r"<chNFe>(\d{44})</chNFe>")
_VNF_RE = re.compile(r"<vNF>([\d.,]+)</vNF>")


def digits(value: str | None) -> str:
    """Keep only digits (CPF/CNPJ, keys)."""
    return re.sub(r"\D", "", value or "")


def extract_xml_meta(xml: str | None) -> dict[str, str | None]:
    """Extract invoice number and 44-digit access key from NF-e XML.

    The key comes from the ``Id="NFe..."`` attribute, falling back to
    ``<chNFe>`` (protocol section).

    Examples:
        >>> extract_xml_meta("<nNF>999</nNF>")
        {'nfe_number': '999', 'nfe_key': None}
    """
    xml = xml or ""
    number_match = _NNF_RE.search(xml)
    key_match = _ID_KEY_RE.search(xml) or _CHNFE_RE.search(xml)
    return {
        "nfe_number": number_match.group(1) if number_match else None,
        "nfe_key": key_match.group(1) if key_match else None,
    }


def extract_xml_total(xml: str | None) -> float | None:
    """Parse ``<vNF>`` total. Dots are thousand separators, comma is decimal.

    Examples:
        >>> extract_xml_total("<vNF>1.234,56</vNF>")
        1234.56
        >>> extract_xml_total("<root/>") is None
        True
    """
    match = _VNF_RE.search(xml or "")
    if not match:
        return None
    raw = match.group(1).replace(".", "").replace(",", ".", 1)
    try:
        return float(raw)
    except ValueError:
        return None


def normalize_tipo(tipo: str | None) -> str:
    lowered = (tipo or "").strip().lower()
    if lowered in ("saida", "saída"):
        return "Saída"
    if lowered == "entrada":
        return "Entrada"
    if lowered == "compra":
        return "Compra"
    return tipo or "-"


def pad_left_num(value: str | int | None, size: int) -> str:
    """Zero-pad the digits of value; longer values are not truncated."""
    only_digits = re.sub(r"\D", "", "" if value is None else str(value))
    return only_digits.rjust(size, "0")


def normalize_focus_url(path: str | None, base: str = FOCUS_BASE_URL) -> str:
    """Resolve a Focus document path (xml/pdf) against the API host.

    Absolute http(s) URLs are returned untouched; empty input gives "".
    """
    value = (path or "").strip()
    if not value:
        return ""
    if re.match(r"^https?://", value, re.IGNORECASE):
        return value
    base = base.rstrip("/")
    if value.startswith("/"):
        return f"{base}{value}"
    return f"{base}/{value}"


def map_domain_status(status: str | None) -> str:
    """Map Focus status text to autorizada/rejeitada/denegada/cancelada/pendente."""
    norm = re.sub(r"[^a-z]", "", (status or "").strip().lower())
    if norm in ("autorizado", "autorizada"):
        return "autorizada"
    if norm in ("rejeitado", "rejeitada"):
        return "rejeitada"
    if norm in ("denegado", "denegada"):
        return "denegada"
    if norm in ("cancelado", "cancelada"):
        return "cancelada"
    return "pendente"


def map_tributacao(tributacao: str | None) -> int | None:
    """Focus ``regime_tributario`` code for a tax regime label."""
    value = (tributacao or "").strip().lower()
    if not value:
        return None
    if value == "simples nacional":
        return 1
    if "excesso" in value or "sublimite" in value:
        return 2
    if value in ("regime normal", "normal"):
        return 3
    if value == "mei":
        return 4
    return None


def resolve_nota_status_label(nota: Mapping[str, Any]) -> str:
    """Display label; a cancelled local status wins over the Focus status."""
    status_focus = str(nota.get("status_focus") or "").lower()
    status = str(nota.get("status") or "").lower()
    if status in ("cancelada", "cancelado"):
        return "Cancelada"
    if status_focus == "autorizado":
        return "Autorizada"
    if status_focus == "pendente":
        return "Pendente"
    if status_focus in ("cancelada", "cancelado"):
        return "Cancelada"
    if status:
        return status[0].upper() + status[1:]
    return status_focus


def decode_xml_base64(xml_b64: Any) -> str | None:
    """Decode the stored base64 NF-e XML; None when absent or not base64."""
    if not xml_b64:
        return None
    try:
        return base64.b64decode(str(xml_b64)).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return None


def resolve_nota_valor(nota: Mapping[str, Any]) -> float | None:
    """Invoice value from total_value, else parsed from the stored XML."""
    total = nota.get("total_value")
    if isinstance(total, (int, float, Decimal)) and not isinstance(total, bool):
        return float(total)

    xml = decode_xml_base64(nota.get("xml_base64"))
    if xml is None:
        return None
    return extract_xml_total(xml)
