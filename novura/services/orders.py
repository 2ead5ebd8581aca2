"""Presented order rows.

Turns a raw marketplace order record (Mercado Livre or Shopee) into the flat
row the orders screen shows: linked SKU, product link, shipping labels,
financial summary and, for Shopee, the parsed shipping address.
"""

from typing import Any

from novura.utils.address import parse_br_address, to_iso_from_epoch_sec
from novura.utils.objects import get_arr, get_field, get_num, get_str
from novura.utils.orders import (
    build_financials,
    build_mercado_livre_link,
    ensure_http_url,
    format_marketplace_label,
    format_shipment_status,
    map_tipo_envio_label,
    normalize_marketplace_id,
    normalize_order_numbers,
    normalize_shipping_type,
    resolve_linked_sku,
)

MERCADO_LIVRE_ID = "mercado-livre"
SHOPEE_ID = "shopee"


def shopee_shipping_address(data: Any) -> dict[str, str | None]:
    """Recipient address from a Shopee order payload.

    Package-level fields win over the order's recipient_address; street
    parts missing from both are parsed out of the full address line.
    """
    package = get_field(data, "package_detail_list", 0, "recipient_address")
    recipient = get_field(data, "order_detail", "recipient_address")

    line = (
        get_str(package, "full_address")
        or get_str(recipient, "full_address")
        or get_str(recipient, "address_line")
    )
    parsed = parse_br_address(line)
    return {
        "address_line": line,
        "street_name": get_str(recipient, "street_name") or parsed["street_name"],
        "street_number": get_str(recipient, "street_number") or parsed["street_number"],
        "neighborhood": (
            get_str(package, "district")
            or get_str(package, "town")
            or get_str(recipient, "district")
            or parsed["neighborhood_name"]
        ),
        "city": get_str(package, "city") or get_str(recipient, "city"),
        "state": get_str(package, "state") or get_str(recipient, "state"),
        "zip_code": get_str(package, "zipcode") or get_str(recipient, "zipcode"),
    }


def _shopee_time(data: Any, key: str) -> str | None:
    return to_iso_from_epoch_sec(
        get_str(data, "order_detail", key) or get_str(data, "order_list_item", key)
    )


def _status_label(order: dict[str, Any]) -> str:
    if (get_str(order, "shipment_status") or "").lower() == "delivered":
        return "Entregue"
    return get_str(order, "status_interno") or get_str(order, "status") or "Pendente"


def present_order(order: dict[str, Any]) -> dict[str, Any]:
    """Flat order row for the orders screen."""
    normalized = normalize_order_numbers(order)
    marketplace_id = normalize_marketplace_id(get_str(normalized, "marketplace"))
    linked_products = [p for p in get_arr(normalized, "linked_products") if isinstance(p, dict)]

    first_item_id = get_str(normalized, "first_item_id")
    first_item_title = get_str(normalized, "first_item_title")
    permalink = ensure_http_url(get_str(normalized, "first_item_permalink"))
    if permalink is None and marketplace_id == MERCADO_LIVRE_ID:
        permalink = build_mercado_livre_link(first_item_id, first_item_title)

    shipping_type = get_str(normalized, "shipping_type")
    quantity = get_num(normalized, "items_total_quantity") or 1
    items = [{
        "valor": get_num(normalized, "first_item_unit_price") or 0,
        "quantidade": quantity,
        "sku": get_str(normalized, "first_item_sku"),
    }]

    row: dict[str, Any] = {
        "id": normalized.get("id"),
        "marketplace_order_id": get_str(normalized, "marketplace_order_id"),
        "marketplace": format_marketplace_label(marketplace_id),
        "marketplace_id": marketplace_id,
        "pack_id": normalized.get("pack_id"),
        "buyer_id": get_field(normalized, "buyer", "id"),
        "produto": first_item_title or "",
        "sku": get_str(normalized, "first_item_sku"),
        "linked_sku": resolve_linked_sku(normalized, linked_products),
        "permalink": permalink,
        "status": _status_label(normalized),
        "shipment_status": format_shipment_status(get_str(normalized, "shipment_status")),
        "tipo_envio": normalize_shipping_type(shipping_type),
        "tipo_envio_label": map_tipo_envio_label(shipping_type),
        "created_at": get_str(normalized, "date_created"),
        "last_updated": get_str(normalized, "last_updated"),
        "financeiro": build_financials(
            items,
            order_total=get_num(normalized, "order_total") or 0,
            frete_recebido=get_num(normalized, "payment_shipping_cost") or 0,
            taxa_marketplace=get_num(normalized, "items_total_sale_fee") or 0,
            envio_metodo=get_str(normalized, "shipping_method_name"),
        ),
    }

    data = normalized.get("data")
    if marketplace_id == SHOPEE_ID and isinstance(data, dict):
        row["shipping_address"] = shopee_shipping_address(data)
        row["created_at"] = _shopee_time(data, "create_time") or row["created_at"]
        row["last_updated"] = _shopee_time(data, "update_time") or row["last_updated"]

    return row
