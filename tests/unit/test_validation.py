"""Tests for input validation and exchange response status checks."""

import pytest

from market_backfill.utils.exceptions import ValidationError
from market_backfill.utils.validation import (
    StatStatus, check_response_stat, validate_security_code, validate_year
)


class TestValidateSecurityCode:

    @pytest.mark.parametrize("raw,expected", [("2330", "2330"), (" 00878 ", "00878"), ("2881a", "2881A")])
    def test_normalizes(self, raw, expected):
        assert validate_security_code(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", None, "23-30", "ABCDEFGHIJK"])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            validate_security_code(raw)


class TestValidateYear:

    def test_accepts_string(self):
        assert validate_year("2026") == 2026

    @pytest.mark.parametrize("raw", ["abc", None, 1800, 2200])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            validate_year(raw)


class TestCheckResponseStat:

    @pytest.mark.parametrize("stat", ["OK", "ok", " Ok "])
    def test_ok_is_case_insensitive(self, stat):
        check = check_response_stat({"stat": stat})
        assert check.ok
        assert check.status is StatStatus.OK

    def test_bad_status(self):
        check = check_response_stat({"stat": "很抱歉，沒有符合條件的資料!"})
        assert check.status is StatStatus.BAD_STATUS
        assert not check.ok

    def test_missing_stat_is_malformed(self):
        assert check_response_stat({"data": []}).status is StatStatus.MALFORMED

    def test_non_string_stat_is_malformed(self):
        assert check_response_stat({"stat": 200}).status is StatStatus.MALFORMED

    @pytest.mark.parametrize("payload", [None, [], "OK"])
    def test_non_object_is_malformed(self, payload):
        assert check_response_stat(payload).status is StatStatus.MALFORMED

    def test_custom_field(self):
        assert check_response_stat({"status": "OK"}, field="status").ok
