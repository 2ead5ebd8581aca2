"""Category attribute filtering for Mercado Livre listing creation.

Given the attribute metadata of a category, split it into the groups the
listing form shows: required fields, technical specs, variation attributes
and attributes that allow variations. Packaging, administrative and other
attributes the seller cannot or should not fill are dropped.
"""

import re
from typing import Any

_PACKAGING_ID_RE = re.compile(r"^PACKAGE_|^PACKAGING_|^SELLING_FORMAT_DIMENSIONS_", re.IGNORECASE)
_PACKAGING_NAME_RE = re.compile(
    r"\bembalagem\b|\bpackage\b|\bpackaging\b|\bpeso da embalagem\b|\blargura da embalagem\b"
    r"|\baltura da embalagem\b|\bcomprimento da embalagem\b",
    re.IGNORECASE,
)

_HIDDEN_ADMIN_ID_RE = re.compile(
    r"^(VAT|IVA|IMPORT_TAX|HAZMAT|HAZMAT_TRANSPORTABILITY|CATALOG_TITLE|SYI_PYMES_ID|IS_NEW_OFFER"
    r"|PRODUCT_SOURCE|COMPATIBILITIES|HAS_COMPATIBILITIES|IS_SUITABLE_FOR_SHIPPING|DESCRIPTIVE_TAGS"
    r"|IS_FLAMMABLE)$",
    re.IGNORECASE,
)
_HIDDEN_ADMIN_NAME_RE = re.compile(
    r"\btags?\s*vertical\b|\bimposto\s+de\s+importa[cç][aã]o\b"
    r"|\borigem\s+do\s+dado\s+do\s+pacote\s+de\s+env[ií]o\b"
    r"|\bimposto\s+sobre\s+o\s+valor\s+acrescentado\b|\bvat\b|\biva\b|\bqu[ií]mic|\bchemical\b"
    r"|\balimentos?\b|\bbebidas?\b|\bmedicamentos?\b|\bbatter(y|ia)s?\b"
    r"|\binforma[cç][aã]o\s+adicional\s+requerida\b|\badequad[oa]\s+para\s+o\s+env[ií]o\b"
    r"|\badecuad[oa]\s+para\s+el?\s+env[ií]o\b|\bapto\s+para\s+el?\s+env[ií]o\b"
    r"|\bsuitable\s+for\s+shipping\b|\bhazmat\b|\btransportabilit(y|ade)\b|\bsyi\s+pymes\s+id\b"
    r"|\bt[íi]tulo\s+de\s+cat[aá]logo\b|\bcatalog\s+title\b|\bnova\s+oferta\b|\bnew\s+offer\b"
    r"|\bcompatibilidades?\b|\bcompatibilit(y|ies)\b|\bfonte\s+do\s+produto\b|\bproduct\s+source\b"
    r"|\bimpacto\s+positivo\b|\bpositive\s+impact\b|\bcon\s+impacto\s+positivo\b",
    re.IGNORECASE,
)

_HIDDEN_EXTRA = (
    r"\bcor\s+filtr[aá]vel\b|\bfilter\s*color\b|\bcolor\s*filterable\b|\bmodelo\s+detalhado\b"
    r"|\bdetailed\s+model\b|\bmotivo\b.*\bgtin\b|\bgtin\b.*\bvazio\b|\bmotivo\b.*\bc[oó]digo\b.*\bbarras\b"
)
_HIDDEN_EXTRA_RE = re.compile(_HIDDEN_EXTRA, re.IGNORECASE)
# Form-level filter also hides limited-visibility and excluded-platform fields
_HIDDEN_EXTRA_FULL_RE = re.compile(
    _HIDDEN_EXTRA + r"|\bvisibilidade\s+limitada\b|\bplataformas?\s+exclu[ií]das\b",
    re.IGNORECASE,
)

_NOT_MODIFIABLE_TAGS = {"read_only", "readonly", "fixed", "inferred", "vip_hidden", "hidden"}
_SKU_IDS = {"GTIN", "SELLER_SKU"}
ITEM_CONDITION = "ITEM_CONDITION"
ALWAYS_REQUIRED = ("BRAND", "MODEL")


def is_packaging_attr(attr_id: str, name: str | None = None) -> bool:
    if _PACKAGING_ID_RE.search(attr_id or ""):
        return True
    return bool(_PACKAGING_NAME_RE.search(name or ""))


def is_hidden_admin_attr(attr_id: str, name: str | None = None) -> bool:
    if _HIDDEN_ADMIN_ID_RE.search((attr_id or "").upper()):
        return True
    return bool(_HIDDEN_ADMIN_NAME_RE.search(name or ""))


def is_hidden_extra_attr(name: str | None) -> bool:
    return bool(_HIDDEN_EXTRA_RE.search(name or ""))


def is_hidden_extra_full(name: str | None) -> bool:
    return bool(_HIDDEN_EXTRA_FULL_RE.search(name or ""))


def has_tags(tags: Any, *keys: str) -> bool:
    """Tags arrive either as a list of names or as a {name: bool} mapping."""
    if isinstance(tags, list):
        return any(key in tags for key in keys)
    if isinstance(tags, dict):
        return any(bool(tags.get(key)) for key in keys)
    return False


def is_not_modifiable(tags: Any) -> bool:
    if not tags:
        return False
    if isinstance(tags, list):
        names = tags
    elif isinstance(tags, dict):
        names = [key for key, value in tags.items() if value]
    else:
        return False
    return any(str(name).lower() in _NOT_MODIFIABLE_TAGS for name in names)


def _attr_id(attr: dict[str, Any]) -> str:
    return str(attr.get("id") or "")


def _attr_name(attr: dict[str, Any]) -> str:
    return str(attr.get("name") or "")


def _is_hidden(attr_id: str, name: str) -> bool:
    return (
        is_packaging_attr(attr_id, name)
        or attr_id == "MPN"
        or is_hidden_admin_attr(attr_id, name)
    )


def variation_attributes(attrs: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Attributes that can vary between variations (tag allow_variations)."""
    result = []
    for attr in attrs:
        attr_id = _attr_id(attr).upper()
        name = _attr_name(attr)
        if attr_id in _SKU_IDS:
            continue
        if not has_tags(attr.get("tags") or {}, "allow_variations"):
            continue
        if _is_hidden(attr_id, name) or is_hidden_extra_attr(name):
            continue
        result.append(attr)
    return result


def allow_variation_attributes(
    attrs: list[dict[str, Any]],
    variation_attrs: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Attributes tagged variation_attribute that are not already variation attributes."""
    variation_ids = {_attr_id(attr).upper() for attr in variation_attrs}
    result = []
    for attr in attrs:
        attr_id = _attr_id(attr).upper()
        name = _attr_name(attr)
        if not has_tags(attr.get("tags") or {}, "variation_attribute"):
            continue
        if attr_id in variation_ids:
            continue
        if _is_hidden(attr_id, name) or is_hidden_extra_attr(name):
            continue
        result.append(attr)
    return result


def variation_required_ids(attrs: list[dict[str, Any]]) -> list[str]:
    ids = []
    for attr in attrs:
        tags = attr.get("tags") or {}
        attr_id = _attr_id(attr).upper()
        name = _attr_name(attr)
        if attr_id in _SKU_IDS or attr_id == "MAIN_COLOR":
            continue
        if not has_tags(tags, "allow_variations", "variation_attribute"):
            continue
        if not has_tags(tags, "required"):
            continue
        if _is_hidden(attr_id, name):
            continue
        ids.append(_attr_id(attr))
    return ids


def allowed_tech_ids(tech_specs: Any) -> set[str]:
    """Attribute ids listed by the category's technical-specs input."""
    ids: set[str] = set()
    if not isinstance(tech_specs, dict):
        return ids

    def add(entry: Any) -> None:
        value = entry.get("id") if isinstance(entry, dict) else entry
        if value:
            ids.add(str(value))

    attributes = tech_specs.get("attributes")
    for entry in attributes if isinstance(attributes, list) else []:
        add(entry)
    groups = tech_specs.get("groups")
    for group in groups if isinstance(groups, list) else []:
        fields = group.get("fields") if isinstance(group, dict) else None
        for entry in fields if isinstance(fields, list) else []:
            add(entry)
    return ids


def filter_listing_attributes(
    attrs: list[dict[str, Any]] | None,
    conditional_required_ids: list[str] | None = None,
    tech_specs: Any = None,
) -> dict[str, Any]:
    """Split category attributes into the listing form groups.

    Returns:
        Dict with required, tech, variation_attrs, allow_variation_attrs and
        variation_required_ids
    """
    attrs = [attr for attr in attrs or [] if isinstance(attr, dict)]
    variation_attrs = variation_attributes(attrs)
    allow_variation_attrs = allow_variation_attributes(attrs, variation_attrs)
    tech_ids = allowed_tech_ids(tech_specs)

    base = []
    for attr in attrs:
        attr_id = _attr_id(attr)
        id_up = attr_id.upper()
        name = _attr_name(attr)
        if id_up in _SKU_IDS:
            continue
        allowed_by_input = (attr_id in tech_ids or id_up == ITEM_CONDITION) if tech_ids else True
        if (
            is_packaging_attr(attr_id, name)
            or is_hidden_admin_attr(attr_id, name)
            or is_hidden_extra_full(name)
            or (is_not_modifiable(attr.get("tags") or {}) and id_up != ITEM_CONDITION)
            or not allowed_by_input
        ):
            continue
        base.append(attr)

    required_ids = {
        _attr_id(attr)
        for attr in base
        if has_tags(attr.get("tags") or {}, "required") and _attr_id(attr).upper() != "MPN"
    }
    required_ids.update(ALWAYS_REQUIRED)
    if any(_attr_id(attr).upper() == ITEM_CONDITION for attr in attrs):
        required_ids.add(ITEM_CONDITION)
    required_ids.update(str(i) for i in conditional_required_ids or [])

    excluded = {_attr_id(attr) for attr in variation_attrs} | {_attr_id(attr) for attr in allow_variation_attrs}
    required = [attr for attr in base if _attr_id(attr) in required_ids and _attr_id(attr) not in excluded]
    tech = [attr for attr in base if _attr_id(attr) not in required_ids and _attr_id(attr) not in excluded]

    return {
        "required": required,
        "tech": tech,
        "variation_attrs": variation_attrs,
        "allow_variation_attrs": allow_variation_attrs,
        "variation_required_ids": variation_required_ids(attrs),
    }
