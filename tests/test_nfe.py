"""Tests for NF-e parsing and status mapping."""

import base64
from decimal import Decimal

import pytest

from novura.utils.nfe import (
    digits,
    extract_xml_meta,
    extract_xml_total,
    map_domain_status,
    map_tributacao,
    normalize_focus_url,
    normalize_tipo,
    pad_left_num,
    resolve_nota_status_label,
    resolve_nota_valor,
)

KEY = "35240112345678000199550010000012341000012345"
XML = (
    f'<nfeProc><NFe><infNFe Id="NFe{KEY}"><ide><nNF>1234</nNF></ide>'
    "<total><ICMSTot><vNF>1.234,56</vNF></ICMSTot></total></infNFe></NFe></nfeProc>"
)


class TestXmlExtraction:
    def test_number_and_key_from_id_attribute(self):
        assert extract_xml_meta(XML) == {"nfe_number": "1234", "nfe_key": KEY}

    def test_key_falls_back_to_protocol(self):
        xml = f"<protNFe><infProt><chNFe>{KEY}</chNFe></infProt></protNFe>"
        assert extract_xml_meta(xml) == {"nfe_number": None, "nfe_key": KEY}

    def test_empty_xml(self):
        assert extract_xml_meta(None) == {"nfe_number": None, "nfe_key": None}

    def test_total_with_thousands_separator(self):
        assert extract_xml_total(XML) == pytest.approx(1234.56)

    def test_total_plain_decimal_comma(self):
        assert extract_xml_total("<vNF>99,90</vNF>") == pytest.approx(99.9)

    def test_total_missing(self):
        assert extract_xml_total("<root/>") is None


class TestStatusMapping:
    @pytest.mark.parametrize(
        "status,expected",
        [
            ("Autorizado", "autorizada"),
            ("autorizada", "autorizada"),
            ("REJEITADO", "rejeitada"),
            ("denegado", "denegada"),
            ("cancelado", "cancelada"),
            ("processando_autorizacao", "pendente"),
            (None, "pendente"),
        ],
    )
    def test_map_domain_status(self, status, expected):
        assert map_domain_status(status) == expected

    @pytest.mark.parametrize(
        "tributacao,expected",
        [
            ("Simples Nacional", 1),
            ("Simples Nacional - excesso de sublimite", 2),
            ("Regime Normal", 3),
            ("MEI", 4),
            ("Lucro Real", None),
            ("", None),
        ],
    )
    def test_map_tributacao(self, tributacao, expected):
        assert map_tributacao(tributacao) == expected

    def test_cancelled_local_status_wins(self):
        assert resolve_nota_status_label({"status": "cancelada", "status_focus": "autorizado"}) == "Cancelada"

    def test_focus_status_labels(self):
        assert resolve_nota_status_label({"status_focus": "autorizado"}) == "Autorizada"
        assert resolve_nota_status_label({"status_focus": "pendente"}) == "Pendente"

    def test_local_status_capitalized(self):
        assert resolve_nota_status_label({"status": "emitida"}) == "Emitida"


class TestValues:
    def test_valor_prefers_total_value(self):
        assert resolve_nota_valor({"total_value": Decimal("10.50"), "xml_base64": "x"}) == 10.5

    def test_valor_from_xml(self):
        encoded = base64.b64encode(XML.encode()).decode()
        assert resolve_nota_valor({"total_value": None, "xml_base64": encoded}) == pytest.approx(1234.56)

    def test_valor_without_sources(self):
        assert resolve_nota_valor({}) is None

    def test_normalize_focus_url(self):
        assert normalize_focus_url("/arquivos/nfe.xml") == "https://api.focusnfe.com.br/arquivos/nfe.xml"
        assert normalize_focus_url("arquivos/nfe.pdf") == "https://api.focusnfe.com.br/arquivos/nfe.pdf"
        assert normalize_focus_url("https://cdn.test/a.pdf") == "https://cdn.test/a.pdf"
        assert normalize_focus_url("  ") == ""

    def test_normalize_tipo(self):
        assert normalize_tipo("saida") == "Saída"
        assert normalize_tipo("ENTRADA") == "Entrada"
        assert normalize_tipo(None) == "-"

    def test_padding_and_digits(self):
        assert pad_left_num(42, 9) == "000000042"
        assert pad_left_num("1234567890", 9) == "1234567890"
        assert digits("12.345.678/0001-99") == "12345678000199"


class TestCompanyRegime:
    async def test_regime_follows_tributacao(self, db, company):
        assert company.regime_tributario == 1

        company.tributacao = "MEI"
        await db.commit()
        assert company.regime_tributario == 4

        company.tributacao = None
        assert company.regime_tributario is None
