"""Tests for kit availability and ticket prioritisation."""

from novura.models import KitItem, Product, ProductStock
from novura.services.catalog import KitComponent, available_kits, prioritize_tickets, ticket_score


class TestAvailableKits:
    def test_minimum_over_components(self):
        items = [{"quantity": 2, "stock": 9}, {"quantity": 1, "stock": 3}]
        assert available_kits(items) == 3

    def test_empty_kit(self):
        assert available_kits([]) == 0

    def test_non_positive_quantity(self):
        assert available_kits([{"quantity": 0, "stock": 10}]) == 0

    def test_negative_stock_counts_as_zero(self):
        assert available_kits([{"quantity": 1, "stock": -4}, {"quantity": 1, "stock": 8}]) == 0

    def test_accepts_models(self):
        components = [KitComponent(quantity=3, stock=10), KitComponent(quantity=1, stock=7)]
        assert available_kits(components) == 3


class TestTickets:
    def test_score(self):
        assert ticket_score({"volatilidade": 10, "riscoPRR": "Alto"}) == 97
        assert ticket_score({"riscoPRR": "Desconhecido"}) == 0

    def test_order_is_descending_and_stable(self):
        tickets = [
            {"id": 1, "volatilidade": 0, "riscoPRR": "Baixo"},
            {"id": 2, "volatilidade": 100, "riscoPRR": "Baixo"},
            {"id": 3, "volatilidade": 0, "riscoPRR": "Baixo"},
            {"id": 4, "volatilidade": 0, "riscoPRR": "Alto"},
        ]
        assert [t["id"] for t in prioritize_tickets(tickets)] == [2, 4, 1, 3]


async def test_list_kits_endpoint(client, db, organization):
    shirt = Product(organizations_id=organization.id, sku="CAM-01", name="Camiseta", type="UNICO")
    cap = Product(organizations_id=organization.id, sku="BON-01", name="Boné", type="UNICO")
    kit = Product(organizations_id=organization.id, sku="KIT-01", name="Kit Verão", type="KIT")
    db.add_all([shirt, cap, kit])
    await db.flush()
    db.add_all([
        ProductStock(product_id=shirt.id, storage_name="Principal", current=7),
        ProductStock(product_id=shirt.id, storage_name="Loja", current=3),
        ProductStock(product_id=cap.id, current=4),
        KitItem(kit_id=kit.id, product_id=shirt.id, quantity=2),
        KitItem(kit_id=kit.id, product_id=cap.id, quantity=1),
    ])
    await db.commit()
    db.expunge_all()

    response = await client.get("/api/products/kits", params={"organization_id": str(organization.id)})

    assert response.status_code == 200
    kits = response.json()
    assert len(kits) == 1
    assert kits[0]["sku"] == "KIT-01"
    assert kits[0]["available"] == 4
    assert {c["sku"]: c["stock"] for c in kits[0]["components"]} == {"CAM-01": 10, "BON-01": 4}


async def test_prioritize_endpoint(client):
    response = await client.post(
        "/api/tickets/prioritize",
        json={"tickets": [{"id": "a", "riscoPRR": "Baixo"}, {"id": "b", "riscoPRR": "Médio"}]},
    )

    assert response.status_code == 200
    body = response.json()
    assert [t["id"] for t in body["tickets"]] == ["b", "a"]
    assert body["tickets"][0]["score"] == 60


async def test_attribute_filter_endpoint(client):
    response = await client.post(
        "/api/listings/attributes/filter",
        json={
            "attributes": [
                {"id": "BRAND", "name": "Marca", "tags": {"required": True}},
                {"id": "MATERIAL", "name": "Material", "tags": {}},
            ],
            "conditionalRequiredIds": ["MATERIAL"],
        },
    )

    assert response.status_code == 200
    assert [a["id"] for a in response.json()["required"]] == ["BRAND", "MATERIAL"]
