"""
Unit tests for reference generation and input sanitization helpers.
"""

import re
import pytest
from datetime import datetime, timezone

from modules.references import generate_order_number, generate_payment_code
from modules.sanitize import as_flag, sanitize_text


NOW = datetime(2026, 10, 19, 10, 15, 30, 123000, tzinfo=timezone.utc)


class TestReferences:
    def test_payment_code_format(self):
        code = generate_payment_code(NOW)

        assert re.fullmatch(r"WA\d{6}[0-9A-Z]{4}", code)
        assert code[2:8] == str(int(NOW.timestamp() * 1000))[-6:]

    def test_order_number_format(self):
        number = generate_order_number(NOW)

        assert re.fullmatch(r"ORD-\d{13}-[0-9A-Z]{6}", number)

    def test_random_suffix_varies(self):
        codes = {generate_payment_code(NOW) for _ in range(50)}

        assert len(codes) > 1


class TestSanitize:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("  Plain title ", "Plain title"),
            ("<b>Bold</b> text", "Bold text"),
            (None, ""),
            (42, "42"),
        ],
    )
    def test_sanitize_text(self, raw, expected):
        assert sanitize_text(raw) == expected

    def test_max_length(self):
        assert sanitize_text("abcdef", max_length=3) == "abc"

    @pytest.mark.parametrize(
        "value, expected",
        [("true", True), ("ON", True), ("0", False), ("no", False), (1, True), (None, False)],
    )
    def test_as_flag(self, value, expected):
        assert as_flag(value) is expected
