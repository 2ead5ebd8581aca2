"""Order helpers: shipping labels, marketplace ids, SKU linking and financials."""

import copy
import math
import re
import unicodedata
from typing import Any

SHIPPING_GROUPS = {
    "full": ("full", "fulfillment", "fbm"),
    "flex": ("flex", "self_service"),
    "envios": ("envios", "me2", "xd_drop_off", "cross_docking", "custom"),
    "correios": ("correios", "drop_off"),
    "no_shipping": ("no_shipping",),
}

SHIPPING_LABELS = {
    "full": "Full",
    "flex": "Flex",
    "envios": "Envios",
    "correios": "Correios",
    "no_shipping": "Sem Envio",
}

SHIPMENT_STATUS_PT = {
    "pending": "pendente",
    "ready_to_print": "pronto para imprimir",
    "printed": "etiqueta impressa",
    "ready_to_ship": "enviar",
    "handling": "em preparação",
    "shipped": "enviado",
    "in_transit": "em trânsito",
    "delivery_in_progress": "em entrega",
    "out_for_delivery": "saiu para entrega",
    "on_route": "a caminho",
    "handed_to_carrier": "entregue à transportadora",
    "delivered": "entregue",
    "receiver_received": "recebido pelo destinatário",
    "ready_to_pickup": "pronto para retirada",
    "not_delivered": "não entregue",
    "returned": "devolvido",
    "canceled": "cancelado",
    "cancelled": "cancelado",
    "collected": "coletado",
    "processing": "processando",
}

FOCUS_BADGES = {
    "autorizado": "Autorizada",
    "autorizada": "Autorizada",
    "processando_autorizacao": "Processando",
    "pendente": "Pendente",
    "cancelado": "Cancelada",
    "cancelada": "Cancelada",
    "rejeitado": "Rejeitada",
    "rejeitada": "Rejeitada",
    "denegado": "Denegada",
    "denegada": "Denegada",
    "erro": "Erro",
    "error": "Erro",
}

FOCUS_BADGE_TONES = {
    "Autorizada": "success",
    "Processando": "info",
    "Pendente": "warning",
}


def _shipping_group(value: str) -> str | None:
    for group, aliases in SHIPPING_GROUPS.items():
        if value in aliases:
            return group
    return None


def normalize_shipping_type(value: str | None) -> str:
    """Collapse marketplace logistic types into full/flex/envios/correios/no_shipping."""
    lowered = (value or "").lower()
    if not lowered:
        return ""
    return _shipping_group(lowered) or lowered


def map_tipo_envio_label(value: str | None) -> str:
    lowered = (value or "").lower()
    group = _shipping_group(lowered)
    if group:
        return SHIPPING_LABELS[group]
    return lowered or "—"


def ensure_http_url(url: str | None) -> str | None:
    if not url:
        return None
    value = str(url).strip()
    if re.match(r"^https?://", value, re.IGNORECASE):
        return value
    return f"https://{value}"


def normalize_marketplace_id(value: str | None) -> str:
    """Slug for a marketplace name: "Mercado Livre" -> "mercado-livre"."""
    decomposed = unicodedata.normalize("NFD", value or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = stripped.lower().strip()
    if not stripped:
        return ""
    return re.sub(r"[_\s]+", "-", stripped)


def format_marketplace_label(marketplace_id: str | None) -> str:
    value = (marketplace_id or "").lower().strip()
    if not value:
        return "Marketplace"
    return " ".join(word[:1].upper() + word[1:] for word in value.split("-"))


def format_shipment_status(status: str | None) -> str:
    value = (status or "").strip()
    if not value:
        return ""
    return SHIPMENT_STATUS_PT.get(value.lower(), value.replace("_", " "))


def map_status_focus_to_badge(status: str | None) -> dict[str, str]:
    """Invoice badge for a Focus status: label plus a tone for the UI."""
    label = FOCUS_BADGES.get((status or "").lower())
    if label is None:
        return {"label": status or "Indefinido", "tone": "neutral"}
    return {"label": label, "tone": FOCUS_BADGE_TONES.get(label, "danger")}


def _clean_item_id(value: Any) -> str:
    text = str(value or "")
    match = re.search(r"(\d+)", text)
    return match.group(1) if match else text


def _variation_id(value: Any) -> str:
    text = "" if value is None else str(value).strip()
    return "" if text == "0" else text


def resolve_linked_sku(order: dict[str, Any], linked_products: list[dict[str, Any]]) -> str | None:
    """SKU of the internal product linked to the order's first item.

    Match by numeric item id and variation, then by item id alone, then
    fall back to the first linked product.
    """
    if not linked_products:
        return None

    permalink_match = re.search(r"ML[A-Z]-?(\d+)", str(order.get("first_item_permalink") or ""), re.IGNORECASE)
    alt_id = permalink_match.group(1) if permalink_match else ""
    first_id = _clean_item_id(order.get("first_item_id")) or alt_id
    first_vid = _variation_id(order.get("first_item_variation_id"))

    match = next(
        (
            link for link in linked_products
            if _clean_item_id(link.get("marketplace_item_id")) == first_id
            and _variation_id(link.get("variation_id")) == first_vid
        ),
        None,
    )
    if match is None:
        match = next(
            (link for link in linked_products if _clean_item_id(link.get("marketplace_item_id")) == first_id),
            None,
        )
    if match is None:
        match = linked_products[0]

    sku = match.get("sku")
    return str(sku) if sku else None


def _to_num(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def build_financials(
    items: list[dict[str, Any]],
    order_total: float,
    frete_recebido: float,
    taxa_marketplace: float,
    envio_metodo: str | None,
) -> dict[str, Any]:
    """Order financial summary.

    valor_pedido is the sum of item value times quantity, or order_total when
    the items sum to zero; liquido = valor_pedido + frete - marketplace fee.
    """
    items_sum = sum(_to_num(it.get("valor")) * _to_num(it.get("quantidade")) for it in items)
    valor_pedido = items_sum or _to_num(order_total)
    liquido = valor_pedido + frete_recebido - taxa_marketplace
    return {
        "valor_pedido": round(valor_pedido, 2),
        "frete_recebido": frete_recebido,
        "taxa_marketplace": taxa_marketplace,
        "envio_metodo": envio_metodo,
        "frete_diferenca": frete_recebido,
        "cupom": 0,
        "impostos": 0,
        "liquido": round(liquido, 2),
        "margem": 0,
    }


def _to_int_or_delete(container: Any, key: str) -> None:
    if not isinstance(container, dict) or key not in container:
        return
    value = container[key]
    if isinstance(value, int) and not isinstance(value, bool):
        return
    if isinstance(value, float) and math.isfinite(value):
        return
    if isinstance(value, str) and value.isdigit():
        container[key] = int(value)
        return
    del container[key]


def normalize_order_numbers(order: dict[str, Any]) -> dict[str, Any]:
    """Coerce buyer/pack ids to integers, dropping non-numeric values.

    Returns a deep copy; the input is not modified.
    """
    normalized = copy.deepcopy(order)
    _to_int_or_delete(normalized.get("buyer"), "id")
    _to_int_or_delete(normalized, "pack_id")
    data = normalized.get("data")
    if isinstance(data, dict):
        _to_int_or_delete(data, "pack_id")
        _to_int_or_delete(data.get("buyer"), "id")
    return normalized


def _slugify(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    ascii_text = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()
    return re.sub(r"[^a-z0-9]+", "-", ascii_text).strip("-")


def build_mercado_livre_link(item_id: str | None, title: str | None = None) -> str | None:
    """Public product page for a listing id such as ``MLB123``."""
    numeric = re.sub(r"^MLB-?", "", str(item_id or "").strip(), flags=re.IGNORECASE)
    if not numeric:
        return None
    slug = _slugify(title or "")
    if not slug:
        return f"https://produto.mercadolivre.com.br/MLB-{numeric}-_JM"
    return f"https://produto.mercadolivre.com.br/MLB-{numeric}-{slug}-_JM"
