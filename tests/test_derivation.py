"""
Tests for attribute resolution and derivation.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import pytest
from datetime import date

from ssi_protocol.derivation import (
    AttributeKind,
    can_satisfy,
    compute_age,
    derive,
    last_chars,
    resolve_attribute,
    resolve_attributes,
)
from ssi_protocol.errors import UnsupportedAttribute


CLAIMS = {"name": "John Doe", "dob": "2000-06-15", "pan": "ABCDE1234F"}


class TestResolveAttribute:
    """Attribute names resolve to a closed set of kinds."""

    def test_over18_is_derived_from_dob(self):
        attribute = resolve_attribute("over18")
        assert attribute.kind == AttributeKind.OVER_AGE
        assert attribute.source_claim == "dob"
        assert attribute.parameter == 18
        assert attribute.is_derived

    def test_pan_last4_is_derived_from_pan(self):
        attribute = resolve_attribute("panLast4")
        assert attribute.kind == AttributeKind.LAST_CHARS
        assert attribute.source_claim == "pan"
        assert attribute.parameter == 4

    def test_unknown_name_is_pass_through(self):
        attribute = resolve_attribute("name")
        assert attribute.kind == AttributeKind.PASS_THROUGH
        assert attribute.source_claim == "name"
        assert not attribute.is_derived

    def test_resolve_preserves_order(self):
        names = [a.name for a in resolve_attributes(["panLast4", "name", "over18"])]
        assert names == ["panLast4", "name", "over18"]


class TestComputeAge:
    """Calendar-aware age computation."""

    def test_day_before_anniversary(self):
        assert compute_age("2000-06-15", date(2018, 6, 14)) == 17

    def test_on_anniversary(self):
        assert compute_age("2000-06-15", date(2018, 6, 15)) == 18

    def test_earlier_month_later_day(self):
        assert compute_age("2000-06-15", date(2018, 5, 30)) == 17

    def test_leap_day_birthday(self):
        assert compute_age("2000-02-29", date(2018, 2, 28)) == 17
        assert compute_age("2000-02-29", date(2018, 3, 1)) == 18

    def test_accepts_date_objects(self):
        assert compute_age(date(1990, 1, 1), date(2025, 1, 15)) == 35

    @pytest.mark.parametrize("dob", ["15-06-2000", "2000/06/15", "2000-13-01", ""])
    def test_malformed_dob(self, dob):
        with pytest.raises(ValueError):
            compute_age(dob, date(2018, 6, 15))


class TestLastChars:

    def test_last_four(self):
        assert last_chars("ABCDE1234F", 4) == "234F"

    def test_shorter_value_returned_whole(self):
        assert last_chars("AB", 4) == "AB"

    def test_exact_length(self):
        assert last_chars("1234", 4) == "1234"


class TestDerive:
    """Per-request derivation."""

    def test_over18_false_day_before(self):
        assert derive(CLAIMS, ["over18"], date(2018, 6, 14)) == {"over18": False}

    def test_over18_true_on_anniversary(self):
        assert derive(CLAIMS, ["over18"], date(2018, 6, 15)) == {"over18": True}

    def test_mixed_attributes(self):
        disclosed = derive(CLAIMS, ["over18", "panLast4", "name"], date(2025, 1, 15))
        assert disclosed == {"over18": True, "panLast4": "234F", "name": "John Doe"}

    def test_short_identifier(self):
        assert derive({"pan": "AB"}, ["panLast4"], date(2025, 1, 15)) == {"panLast4": "AB"}

    def test_null_pass_through_disclosed_verbatim(self):
        assert derive({"email": None}, ["email"], date(2025, 1, 15)) == {"email": None}

    def test_null_derived_source_aborts(self):
        with pytest.raises(UnsupportedAttribute):
            derive({"pan": None}, ["panLast4"], date(2025, 1, 15))

    def test_missing_pass_through_aborts(self):
        with pytest.raises(UnsupportedAttribute) as exc:
            derive(CLAIMS, ["over18", "address"], date(2025, 1, 15))
        assert exc.value.attribute == "address"

    def test_missing_source_claim_aborts(self):
        with pytest.raises(UnsupportedAttribute) as exc:
            derive({"name": "John Doe"}, ["panLast4"], date(2025, 1, 15))
        assert exc.value.attribute == "panLast4"

    def test_unparseable_dob_aborts(self):
        with pytest.raises(UnsupportedAttribute):
            derive({"dob": "June 2000"}, ["over18"], date(2025, 1, 15))


class TestCanSatisfy:

    def test_present_source_claim(self):
        assert can_satisfy(CLAIMS, resolve_attribute("over18"))

    def test_absent_source_claim(self):
        assert not can_satisfy({"name": "x"}, resolve_attribute("panLast4"))

    def test_null_pass_through_claim_exists(self):
        assert can_satisfy({"email": None}, resolve_attribute("email"))

    def test_absent_pass_through_claim(self):
        assert not can_satisfy({"name": "x"}, resolve_attribute("email"))

    def test_null_source_of_derived_attribute(self):
        assert not can_satisfy({"dob": None}, resolve_attribute("over18"))
        assert not can_satisfy({"pan": None}, resolve_attribute("panLast4"))
