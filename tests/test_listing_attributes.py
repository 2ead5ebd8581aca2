"""Tests for listing form attribute grouping."""

from novura.services.listing_attributes import (
    allowed_tech_ids,
    filter_listing_attributes,
    has_tags,
    is_hidden_admin_attr,
    is_hidden_extra_full,
    is_not_modifiable,
    is_packaging_attr,
)

ATTRIBUTES = [
    {"id": "BRAND", "name": "Marca", "tags": {"required": True}},
    {"id": "MODEL", "name": "Modelo", "tags": {}},
    {"id": "COLOR", "name": "Cor", "tags": {"allow_variations": True}},
    {"id": "SIZE", "name": "Tamanho", "tags": {"allow_variations": True, "required": True}},
    {"id": "MATERIAL", "name": "Material", "tags": {}},
    {"id": "PACKAGE_WEIGHT", "name": "Peso da embalagem", "tags": {}},
    {"id": "GTIN", "name": "Código universal de produto", "tags": {"allow_variations": True}},
    {"id": "ITEM_CONDITION", "name": "Condição do item", "tags": {"read_only": True}},
    {"id": "LINE", "name": "Linha", "tags": {"read_only": True}},
    {"id": "PATTERN", "name": "Estampa", "tags": {"variation_attribute": True}},
    {"id": "VAT", "name": "IVA", "tags": {}},
]


def _ids(attrs):
    return [attr["id"] for attr in attrs]


class TestPredicates:
    def test_packaging(self):
        assert is_packaging_attr("PACKAGE_HEIGHT")
        assert is_packaging_attr("X", "Largura da embalagem")
        assert not is_packaging_attr("COLOR", "Cor")

    def test_hidden_admin(self):
        assert is_hidden_admin_attr("hazmat")
        assert is_hidden_admin_attr("X", "Adequado para o envio")
        assert not is_hidden_admin_attr("BRAND", "Marca")

    def test_hidden_extra_full(self):
        assert is_hidden_extra_full("Cor filtrável")
        assert is_hidden_extra_full("Plataformas excluídas")
        assert not is_hidden_extra_full("Material")

    def test_tags_as_list_or_dict(self):
        assert has_tags(["required"], "required")
        assert has_tags({"required": True}, "required")
        assert not has_tags({"required": False}, "required")
        assert not has_tags(None, "required")

    def test_not_modifiable(self):
        assert is_not_modifiable({"read_only": True})
        assert is_not_modifiable(["Fixed"])
        assert not is_not_modifiable({"read_only": False})
        assert not is_not_modifiable(None)

    def test_tech_ids_from_attributes_and_groups(self):
        specs = {"attributes": [{"id": "A"}, "B"], "groups": [{"fields": [{"id": "C"}]}]}
        assert allowed_tech_ids(specs) == {"A", "B", "C"}
        assert allowed_tech_ids(None) == set()


class TestFilterListingAttributes:
    def test_groups(self):
        result = filter_listing_attributes(ATTRIBUTES)

        assert _ids(result["required"]) == ["BRAND", "MODEL", "ITEM_CONDITION"]
        assert _ids(result["tech"]) == ["MATERIAL"]
        assert _ids(result["variation_attrs"]) == ["COLOR", "SIZE"]
        assert _ids(result["allow_variation_attrs"]) == ["PATTERN"]
        assert result["variation_required_ids"] == ["SIZE"]

    def test_conditional_required_moves_to_required(self):
        result = filter_listing_attributes(ATTRIBUTES, conditional_required_ids=["MATERIAL"])

        assert "MATERIAL" in _ids(result["required"])
        assert result["tech"] == []

    def test_tech_specs_restrict_fields(self):
        specs = {"groups": [{"fields": [{"id": "BRAND"}]}]}
        result = filter_listing_attributes(ATTRIBUTES, tech_specs=specs)

        assert _ids(result["required"]) == ["BRAND", "ITEM_CONDITION"]
        assert result["tech"] == []

    def test_ignores_non_dict_entries(self):
        result = filter_listing_attributes([None, "x", {"id": "MATERIAL", "name": "Material"}])
        assert _ids(result["tech"]) == ["MATERIAL"]

    def test_empty(self):
        result = filter_listing_attributes(None)
        assert result["required"] == []
        assert result["tech"] == []
