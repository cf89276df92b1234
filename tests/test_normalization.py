from __future__ import annotations

import math
from datetime import datetime, timezone

import pytest

from insiderscope.util.normalization import (
    accession_to_compact,
    accession_to_dashed,
    iso_date_only,
    normalize_cik,
    number_key,
    parse_number,
    round_half_up,
    safe_text,
)
from insiderscope.util.time import parse_feed_timestamp


def test_normalize_cik():
    assert normalize_cik("320193") == "0000320193"
    assert normalize_cik(" CIK 0000320193 ") == "0000320193"
    assert normalize_cik(320193) == "0000320193"
    assert normalize_cik("") is None
    assert normalize_cik(None) is None


def test_accession_forms_are_mutually_derivable():
    assert accession_to_dashed("000032019324000001") == "0000320193-24-000001"
    assert accession_to_compact("0000320193-24-000001") == "000032019324000001"
    assert accession_to_dashed(accession_to_compact("0000320193-24-000001")) == "0000320193-24-000001"
    with pytest.raises(ValueError):
        accession_to_dashed("12345")


def test_parse_number():
    assert parse_number("1,234.50") == 1234.5
    assert parse_number(" 7 ") == 7.0
    assert parse_number(3) == 3.0
    assert parse_number("") is None
    assert parse_number("n/a") is None
    assert parse_number("nan") is None
    assert parse_number("inf") is None
    assert parse_number(math.inf) is None
    assert parse_number(True) is None
    assert parse_number(None) is None


def test_iso_date_only():
    assert iso_date_only("2024-05-08") == "2024-05-08"
    assert iso_date_only("2024-05-08T00:00:00-04:00") == "2024-05-08"
    assert iso_date_only("2024-13-01") is None
    assert iso_date_only("05/08/2024") is None
    assert iso_date_only(None) is None


def test_number_key_ignores_int_float_spelling():
    assert number_key(1000) == number_key(1000.0) == "1000"
    assert number_key(50.25) == "50.25"


def test_round_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2
    assert round_half_up(50000.0) == 50000


def test_safe_text_collapses_whitespace():
    assert safe_text("  Doe \n Jane ") == "Doe Jane"
    assert safe_text(None) == ""


def test_parse_feed_timestamp_keeps_feed_offset():
    dt = parse_feed_timestamp("2024-05-09T16:00:00-04:00")
    assert dt.isoformat() == "2024-05-09T16:00:00-04:00"
    assert dt == datetime(2024, 5, 9, 20, tzinfo=timezone.utc)
    assert parse_feed_timestamp("2024-05-09T21:15:00-04:00").date().isoformat() == "2024-05-09"
    assert parse_feed_timestamp("2024-05-09T20:00:00Z") == dt
    assert parse_feed_timestamp("2024-05-09T20:00:00").tzinfo is not None
    assert parse_feed_timestamp("yesterday") is None
    assert parse_feed_timestamp("") is None
