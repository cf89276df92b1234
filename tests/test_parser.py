"""Form 4 ownership document parsing."""
from __future__ import annotations

from xml.etree import ElementTree as ET

from insiderscope.sec.parser import ISSUER_NAME_RULES, extract_first, parse_purchases, strip_namespaces

from conftest import form4_xml


def test_single_purchase_fields():
    xml = form4_xml(
        ticker="acme",
        transactions=[("P", "1000", "50.00", "2024-05-08")],
    )
    txs = parse_purchases(xml)
    assert len(txs) == 1
    tx = txs[0]
    assert tx.issuer_ticker == "ACME"
    assert tx.issuer_name == "Acme Corp"
    assert tx.issuer_cik == "0000320193"
    assert tx.owner_name == "Doe Jane"
    assert tx.owner_title == "Chief Executive Officer"
    assert tx.shares == 1000.0
    assert tx.price_per_share == 50.0
    assert tx.total_value == 50000
    assert tx.transaction_date == "2024-05-08"
    assert tx.transaction_code == "P"


def test_only_open_market_purchases_with_positive_numbers_survive():
    xml = form4_xml(
        transactions=[
            ("P", "1,500", "10.25", "2024-05-01"),  # kept, separator stripped
            ("S", "100", "12.00", "2024-05-01"),
            ("A", "100", "0", "2024-05-01"),
            ("P", "200", "0", "2024-05-01"),
            ("P", "abc", "10", "2024-05-01"),
            ("P", "300", "", "2024-05-01"),
            ("P", "-5", "10", "2024-05-01"),
            ("p", "10", "2.5", "2024-05-02"),
            (" P ", "20", "1.5", "2024-05-02"),
        ]
    )
    txs = parse_purchases(xml)
    assert [(t.shares, t.price_per_share) for t in txs] == [(1500.0, 10.25), (20.0, 1.5)]
    assert txs[0].total_value == 15375


def test_overflowing_total_drops_the_entry():
    xml = form4_xml(transactions=[("P", "1e308", "10", "2024-05-01"), ("P", "100", "5", "2024-05-01")])
    txs = parse_purchases(xml)
    assert [(t.shares, t.total_value) for t in txs] == [(100.0, 500)]


def test_total_value_rounds_half_up():
    xml = form4_xml(transactions=[("P", "3", "0.5", "2024-05-01"), ("P", "5", "0.5", "2024-05-01")])
    assert [t.total_value for t in parse_purchases(xml)] == [2, 3]


def test_missing_date_is_left_for_caller():
    xml = form4_xml(transactions=[("P", "10", "4", None)])
    (tx,) = parse_purchases(xml)
    assert tx.transaction_date is None
    assert tx.with_fallback_date("2024-05-09").transaction_date == "2024-05-09"


def test_datetime_is_truncated_to_calendar_date():
    xml = form4_xml(transactions=[("P", "10", "4", "2024-05-08T00:00:00-05:00")])
    assert parse_purchases(xml)[0].transaction_date == "2024-05-08"


def test_namespaced_document_reads_like_plain_one():
    xml = """<?xml version="1.0"?>
<ns1:ownershipDocument xmlns:ns1="http://www.sec.gov/edgar/ownership"
    xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" xsi:noNamespaceSchemaLocation="x.xsd">
  <ns1:issuer>
    <ns1:issuerCik>0000789019</ns1:issuerCik>
    <ns1:issuerName>Widget Inc</ns1:issuerName>
    <ns1:issuerTradingSymbol>wdgt</ns1:issuerTradingSymbol>
  </ns1:issuer>
  <ns1:reportingOwner>
    <ns1:reportingOwnerId><ns1:rptOwnerName>Roe Richard</ns1:rptOwnerName></ns1:reportingOwnerId>
  </ns1:reportingOwner>
  <ns1:nonDerivativeTable>
    <ns1:nonDerivativeTransaction>
      <ns1:transactionDate><ns1:value>2024-04-30</ns1:value></ns1:transactionDate>
      <ns1:transactionCoding><ns1:transactionCode>P</ns1:transactionCode></ns1:transactionCoding>
      <ns1:transactionAmounts>
        <ns1:transactionShares><ns1:value>250</ns1:value></ns1:transactionShares>
        <ns1:transactionPricePerShare><ns1:value>8</ns1:value></ns1:transactionPricePerShare>
      </ns1:transactionAmounts>
    </ns1:nonDerivativeTransaction>
  </ns1:nonDerivativeTable>
</ns1:ownershipDocument>
"""
    (tx,) = parse_purchases(xml)
    assert tx.issuer_ticker == "WDGT"
    assert tx.issuer_name == "Widget Inc"
    assert tx.owner_name == "Roe Richard"
    assert tx.owner_title is None
    assert tx.total_value == 2000


def test_default_namespace_is_dropped():
    xml = '<ownershipDocument xmlns="http://www.sec.gov/edgar/ownership"><issuer><issuerName>X</issuerName></issuer></ownershipDocument>'
    root = ET.fromstring(strip_namespaces(xml))
    assert root.tag == "ownershipDocument"
    assert extract_first(root, ISSUER_NAME_RULES) == "X"


def test_strip_namespaces_leaves_text_and_declarations_alone():
    xml = '<?xml version="1.0"?><!-- a:b --><a:root xmlns:a="urn:x"><a:t>http://x.y/z:w</a:t></a:root>'
    out = strip_namespaces(xml)
    assert out.startswith('<?xml version="1.0"?><!-- a:b -->')
    assert "<root><t>http://x.y/z:w</t></root>" in out


def test_bare_and_wrapped_values_both_work():
    xml = """<ownershipDocument>
  <issuer><issuerName>Bare Co</issuerName><issuerTradingSymbol>BARE</issuerTradingSymbol></issuer>
  <reportingOwner><reportingOwnerId><rptOwnerName>Smith Al</rptOwnerName></reportingOwnerId></reportingOwner>
  <nonDerivativeTable>
    <nonDerivativeTransaction>
      <transactionDate>2024-05-01</transactionDate>
      <transactionCoding><transactionCode>P</transactionCode></transactionCoding>
      <transactionAmounts>
        <transactionShares>40</transactionShares>
        <transactionPricePerShare><value>2.5</value><footnoteId id="F1"/></transactionPricePerShare>
      </transactionAmounts>
    </nonDerivativeTransaction>
  </nonDerivativeTable>
</ownershipDocument>"""
    (tx,) = parse_purchases(xml)
    assert tx.transaction_date == "2024-05-01"
    assert tx.shares == 40.0
    assert tx.price_per_share == 2.5
    assert tx.total_value == 100


def test_wrapped_root_and_deeper_table_are_found():
    xml = """<edgarSubmission>
  <formData>
    <ownershipDocument>
      <issuer><issuerName>Deep Co</issuerName><issuerTradingSymbol>DEEP</issuerTradingSymbol></issuer>
      <reportingOwner><reportingOwnerId><rptOwnerName>Lee Kim</rptOwnerName></reportingOwnerId></reportingOwner>
      <holdings>
        <nonDerivativeTable>
          <nonDerivativeTransaction>
            <transactionCoding><transactionCode>P</transactionCode></transactionCoding>
            <transactionAmounts>
              <transactionShares><value>7</value></transactionShares>
              <transactionPricePerShare><value>3</value></transactionPricePerShare>
            </transactionAmounts>
          </nonDerivativeTransaction>
        </nonDerivativeTable>
      </holdings>
    </ownershipDocument>
  </formData>
</edgarSubmission>"""
    (tx,) = parse_purchases(xml)
    assert tx.issuer_ticker == "DEEP"
    assert tx.owner_name == "Lee Kim"
    assert tx.total_value == 21


def test_derivative_table_is_ignored():
    xml = """<ownershipDocument>
  <issuer><issuerName>Opt Co</issuerName></issuer>
  <derivativeTable>
    <derivativeTransaction>
      <transactionCoding><transactionCode>P</transactionCode></transactionCoding>
      <transactionAmounts>
        <transactionShares><value>7</value></transactionShares>
        <transactionPricePerShare><value>3</value></transactionPricePerShare>
      </transactionAmounts>
    </derivativeTransaction>
  </derivativeTable>
</ownershipDocument>"""
    assert parse_purchases(xml) == []


def test_malformed_input_yields_empty_list():
    assert parse_purchases("") == []
    assert parse_purchases("not xml at all") == []
    assert parse_purchases("<ownershipDocument><issuer>") == []
    assert parse_purchases("\ufeff<ownershipDocument/>") == []
