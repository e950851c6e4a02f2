"""
Tests for folio.formatting module.
"""

from datetime import date, datetime

import pytest
from jinja2 import Environment

from folio.formatting import (
    format_date,
    format_date_range,
    format_end_date,
    format_month_year,
    register_filters,
    to_date,
)


class TestToDate:
    """Tests for date coercion."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2020-01-15", date(2020, 1, 15)),
            ("2020-01-15T08:30:00", date(2020, 1, 15)),
            (date(2021, 5, 1), date(2021, 5, 1)),
            (datetime(2021, 5, 1, 12, 0), date(2021, 5, 1)),
            (None, None),
            ("", None),
            ("garbage", None),
        ],
    )
    def test_to_date(self, value, expected):
        assert to_date(value) == expected


class TestFormatters:
    """Tests for month/year and range formatting."""

    def test_month_year(self):
        assert format_month_year("2020-01-15") == "Jan 2020"
        assert format_month_year(date(2023, 12, 1)) == "Dec 2023"
        assert format_month_year(None) is None

    def test_indonesian_months(self):
        assert format_month_year("2020-05-01", "id") == "Mei 2020"
        assert format_month_year("2020-08-01", "id") == "Agu 2020"
        assert format_month_year("2020-10-01", "id") == "Okt 2020"

    def test_unknown_locale_falls_back_to_english(self):
        assert format_month_year("2020-05-01", "fr") == "May 2020"

    def test_missing_date_is_na(self):
        assert format_date(None) == "N/A"

    def test_missing_end_date_is_present(self):
        assert format_end_date(None) == "Present"
        assert format_end_date(None, "id") == "Sekarang"

    def test_date_range(self):
        assert format_date_range("2020-01-01", None) == "Jan 2020 - Present"
        assert format_date_range("2020-01-01", "2021-03-31") == "Jan 2020 - Mar 2021"
        assert format_date_range(None, None) == "N/A - Present"
        assert format_date_range("2020-01-01", None, "id") == "Jan 2020 - Sekarang"


class TestJinjaFilters:
    """Tests for registered template filters."""

    def test_filters_follow_active_locale(self):
        env = Environment()
        locale = {"value": "en"}
        register_filters(env, lambda: locale["value"])
        template = env.from_string("{{ record | date_range }} / {{ record.end_date | end_date }}")
        record = {"start_date": "2019-05-01", "end_date": None}

        assert template.render(record=record) == "May 2019 - Present / Present"

        locale["value"] = "id"
        assert template.render(record=record) == "Mei 2019 - Sekarang / Sekarang"

    def test_date_range_with_custom_keys(self):
        env = Environment()
        register_filters(env, lambda: "en")
        template = env.from_string("{{ record | date_range('from', 'to') }}")

        assert template.render(record={"from": "2018-02-01", "to": "2019-02-01"}) == "Feb 2018 - Feb 2019"

    def test_month_year_filter(self):
        env = Environment()
        register_filters(env, lambda: "en")

        assert env.from_string("{{ d | month_year }}").render(d=None) == "N/A"
