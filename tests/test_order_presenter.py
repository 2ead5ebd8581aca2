"""Tests for presented order rows and the order presentation endpoint."""

from novura.services.orders import present_order, shopee_shipping_address

ML_ORDER = {
    "id": "ord-1",
    "marketplace": "Mercado Livre",
    "marketplace_order_id": "2000001",
    "pack_id": "2000009",
    "buyer": {"id": "777"},
    "first_item_id": "MLB123",
    "first_item_title": "Camiseta Básica",
    "first_item_variation_id": "0",
    "first_item_sku": "CAM-01",
    "first_item_unit_price": 50,
    "items_total_quantity": 2,
    "order_total": 100,
    "payment_shipping_cost": 10,
    "items_total_sale_fee": 15,
    "shipping_type": "fulfillment",
    "shipment_status": "ready_to_ship",
    "status": "Pago",
    "linked_products": [
        {"marketplace_item_id": "MLB999", "sku": "OUTRO"},
        {"marketplace_item_id": "MLB123", "variation_id": None, "sku": "INT-CAM-01"},
    ],
}

SHOPEE_DATA = {
    "order_detail": {
        "create_time": 1700000000,
        "update_time": "1700003600",
        "recipient_address": {
            "full_address": "Rua das Flores, 123 - Centro - São Paulo 01310-100",
            "city": "São Paulo",
            "state": "SP",
            "zipcode": "01310-100",
        },
    },
    "package_detail_list": [
        {"recipient_address": {"district": "Jardim Paulista"}},
    ],
}


class TestPresentOrder:
    def test_mercado_livre_row(self):
        row = present_order(ML_ORDER)

        assert row["marketplace"] == "Mercado Livre"
        assert row["marketplace_id"] == "mercado-livre"
        assert row["pack_id"] == 2000009
        assert row["buyer_id"] == 777
        assert row["linked_sku"] == "INT-CAM-01"
        assert row["permalink"] == "https://produto.mercadolivre.com.br/MLB-123-camiseta-basica-_JM"
        assert row["tipo_envio"] == "full"
        assert row["tipo_envio_label"] == "Full"
        assert row["shipment_status"] == "enviar"
        assert row["status"] == "Pago"
        assert row["financeiro"]["valor_pedido"] == 100
        assert row["financeiro"]["liquido"] == 95
        assert "shipping_address" not in row

    def test_input_is_not_modified(self):
        order = {**ML_ORDER, "buyer": {"id": "777"}}
        present_order(order)
        assert order["buyer"] == {"id": "777"}

    def test_stored_permalink_wins_and_delivered_status(self):
        row = present_order({
            **ML_ORDER,
            "first_item_permalink": "produto.mercadolivre.com.br/MLB-123",
            "shipment_status": "delivered",
        })
        assert row["permalink"] == "https://produto.mercadolivre.com.br/MLB-123"
        assert row["status"] == "Entregue"

    def test_non_numeric_ids_are_dropped(self):
        row = present_order({**ML_ORDER, "pack_id": "abc", "buyer": {"id": None}})
        assert row["pack_id"] is None
        assert row["buyer_id"] is None

    def test_shopee_row_has_address_and_epoch_dates(self):
        row = present_order({
            "id": "ord-2",
            "marketplace": "Shopee",
            "order_total": 80,
            "date_created": "2023-01-01T00:00:00Z",
            "data": SHOPEE_DATA,
        })

        assert row["marketplace"] == "Shopee"
        assert row["permalink"] is None
        assert row["created_at"] == "2023-11-14T22:13:20.000Z"
        assert row["last_updated"] == "2023-11-14T23:13:20.000Z"
        assert row["shipping_address"]["street_name"] == "Rua das Flores"
        assert row["financeiro"]["valor_pedido"] == 80


class TestShopeeAddress:
    def test_package_fields_win_over_parsed_line(self):
        address = shopee_shipping_address(SHOPEE_DATA)

        assert address == {
            "address_line": "Rua das Flores, 123 - Centro - São Paulo 01310-100",
            "street_name": "Rua das Flores",
            "street_number": "123",
            "neighborhood": "Jardim Paulista",
            "city": "São Paulo",
            "state": "SP",
            "zip_code": "01310-100",
        }

    def test_neighborhood_from_parsed_line(self):
        data = {"order_detail": {"recipient_address": {"full_address": "Rua A, 10 - Centro"}}}
        assert shopee_shipping_address(data)["neighborhood"] == "Centro"

    def test_missing_address(self):
        address = shopee_shipping_address({})
        assert address["address_line"] is None
        assert address["street_name"] is None


async def test_present_endpoint(client):
    response = await client.post("/api/orders/present", json={"orders": [ML_ORDER]})

    assert response.status_code == 200
    [row] = response.json()["orders"]
    assert row["linked_sku"] == "INT-CAM-01"
    assert row["pack_id"] == 2000009
