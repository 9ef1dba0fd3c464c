"""
Time Range Conditions (db/query/timerange.py)

Tests time coercion, named windows and the where_time family of
query helpers.
"""

from datetime import date, datetime, timedelta

import pytest

from quarry.db.query.timerange import TIME_RULES, shift, time_rule_range, to_datetime, to_timestamp


NOW = datetime(2024, 3, 13, 15, 30, 0)  # a Wednesday


# ============================================================================
# Coercion
# ============================================================================

class TestToDatetime:

    def test_datetime_passthrough(self):
        assert to_datetime(NOW) is NOW

    def test_date(self):
        assert to_datetime(date(2024, 3, 1)) == datetime(2024, 3, 1)

    def test_timestamp(self):
        stamp = NOW.timestamp()
        assert to_datetime(stamp) == NOW
        assert to_datetime(str(int(stamp))) == NOW

    def test_year_and_month(self):
        assert to_datetime("2024") == datetime(2024, 1, 1)
        assert to_datetime("2024-3") == datetime(2024, 3, 1)
        assert to_datetime("2024-03") == datetime(2024, 3, 1)

    def test_four_digits_are_a_year(self):
        """A bare year string is a calendar year, not a timestamp."""
        assert to_datetime("2023") == datetime(2023, 1, 1)
        assert to_datetime("1999-12") == datetime(1999, 12, 1)
        assert to_datetime("20230") == datetime.fromtimestamp(20230)

    def test_iso(self):
        assert to_datetime("2024-03-13 10:00:00") == datetime(2024, 3, 13, 10)
        assert to_datetime("2024-03-13") == datetime(2024, 3, 13)

    def test_words(self):
        assert to_datetime("now", NOW) == NOW
        assert to_datetime("today", NOW) == datetime(2024, 3, 13)
        assert to_datetime("yesterday", NOW) == datetime(2024, 3, 12)
        assert to_datetime("Tomorrow", NOW) == datetime(2024, 3, 14)

    def test_invalid(self):
        assert to_datetime("not a date") is None
        assert to_datetime(True) is None
        assert to_datetime(None) is None
        assert to_timestamp("garbage") is None

    def test_to_timestamp(self):
        assert to_timestamp(NOW) == NOW.timestamp()


class TestShift:

    def test_days_and_weeks(self):
        assert shift(NOW, "day", 2) == NOW + timedelta(days=2)
        assert shift(NOW, "weeks", -1) == NOW - timedelta(weeks=1)

    def test_month_clamps(self):
        assert shift(datetime(2024, 1, 31), "month", 1) == datetime(2024, 2, 29)
        assert shift(datetime(2024, 3, 31), "month", -1) == datetime(2024, 2, 29)

    def test_year(self):
        assert shift(datetime(2024, 2, 29), "year", 1) == datetime(2025, 2, 28)

    def test_unsupported(self):
        with pytest.raises(ValueError):
            shift(NOW, "fortnight", 1)


# ============================================================================
# Named windows
# ============================================================================

class TestTimeRules:

    def test_rule_names(self):
        assert set(TIME_RULES) == {
            "today", "yesterday", "week", "last week", "month", "last month", "year", "last year",
        }

    def test_today(self):
        assert time_rule_range("today", NOW) == (
            datetime(2024, 3, 13), datetime(2024, 3, 13, 23, 59, 59),
        )

    def test_week_starts_monday(self):
        start, end = time_rule_range("week", NOW)
        assert start == datetime(2024, 3, 11)
        assert end == datetime(2024, 3, 17, 23, 59, 59)
        start, _ = time_rule_range("last week", NOW)
        assert start == datetime(2024, 3, 4)

    def test_month(self):
        assert time_rule_range("month", NOW) == (
            datetime(2024, 3, 1), datetime(2024, 3, 31, 23, 59, 59),
        )
        assert time_rule_range("last month", NOW)[0] == datetime(2024, 2, 1)

    def test_year(self):
        assert time_rule_range("last year", NOW) == (
            datetime(2023, 1, 1), datetime(2023, 12, 31, 23, 59, 59),
        )

    def test_custom_rules(self):
        assert time_rule_range(("2024-01-01", "2024-02-01"), NOW) == ("2024-01-01", "2024-02-01")
        assert time_rule_range(lambda now: (now, now), NOW) == (NOW, NOW)
        assert time_rule_range("fortnight", NOW) is None


# ============================================================================
# Query helpers
# ============================================================================

class TestWhereTime:

    def test_between_datetime_column(self, db):
        sql = db.table("user").where_between_time(
            "create_time", "2024-01-01", "2024-01-31 23:59:59",
        ).fetch_sql().select()
        assert sql == (
            "SELECT * FROM `user` WHERE `create_time` BETWEEN "
            "'2024-01-01 00:00:00' AND '2024-01-31 23:59:59'"
        )

    def test_comparison(self, db):
        sql = db.table("user").where_time("create_time", ">=", "2024-05-01").fetch_sql().select()
        assert sql == "SELECT * FROM `user` WHERE `create_time` >= '2024-05-01 00:00:00'"

    def test_single_bound_defaults_to_ge(self, db):
        sql = db.table("user").where_time("create_time", "2024-05-01").fetch_sql().select()
        assert sql == "SELECT * FROM `user` WHERE `create_time` >= '2024-05-01 00:00:00'"

    def test_int_column_uses_timestamps(self, db):
        start = datetime(2024, 1, 1)
        sql = db.table("post").where_time("delete_time", ">", start).fetch_sql().select()
        assert sql == f"SELECT * FROM `post` WHERE `delete_time` > {int(start.timestamp())}"

    def test_named_window(self, db):
        today = datetime.now().strftime("%Y-%m-%d")
        sql = db.table("user").where_time("create_time", "today").fetch_sql().select()
        assert f"'{today} 00:00:00' AND '{today} 23:59:59'" in sql

    def test_custom_rule(self, db):
        sql = (
            db.table("user")
            .time_rule({"launch": ("2024-02-01", "2024-02-02")})
            .where_time("create_time", "launch")
            .fetch_sql()
            .select()
        )
        assert "BETWEEN '2024-02-01 00:00:00' AND '2024-02-02 00:00:00'" in sql

    def test_interval(self, db):
        sql = db.table("user").where_time_interval("create_time", "2024-02-01", "month").fetch_sql().select()
        assert "BETWEEN '2024-02-01 00:00:00' AND '2024-02-29 23:59:59'" in sql

    def test_where_month(self, db):
        sql = db.table("user").where_month("create_time", "2024-02").fetch_sql().select()
        assert "BETWEEN '2024-02-01 00:00:00' AND '2024-02-29 23:59:59'" in sql

    def test_where_year(self, db):
        sql = db.table("user").where_year("create_time", "2023").fetch_sql().select()
        assert "BETWEEN '2023-01-01 00:00:00' AND '2023-12-31 23:59:59'" in sql

    def test_where_year_int(self, db):
        sql = db.table("user").where_year("create_time", 2023).fetch_sql().select()
        assert "BETWEEN '2023-01-01 00:00:00' AND '2023-12-31 23:59:59'" in sql

    def test_year_bounds(self, db):
        sql = db.table("user").where_between_time("create_time", "2022", "2023").fetch_sql().select()
        assert "BETWEEN '2022-01-01 00:00:00' AND '2023-01-01 00:00:00'" in sql

    def test_where_day_this_day(self, db):
        today = datetime.now().strftime("%Y-%m-%d")
        sql = db.table("user").where_day("create_time").fetch_sql().select()
        assert f"'{today} 00:00:00' AND '{today} 23:59:59'" in sql

    def test_not_between(self, db):
        sql = db.table("user").where_not_between_time(
            "create_time", "2024-01-01", "2024-01-31",
        ).fetch_sql().select()
        assert sql == (
            "SELECT * FROM `user` WHERE ( `create_time` < '2024-01-01 00:00:00' "
            "OR `create_time` > '2024-01-31 00:00:00' )"
        )

    def test_between_time_field(self, db):
        sql = db.table("user").where_between_time_field("create_time", "update_time").fetch_sql().select()
        assert "`create_time` <= '" in sql
        assert "AND `update_time` >= '" in sql

    def test_filters_rows(self, db):
        db.table("user").insert_all([
            {"name": "old", "create_time": "2023-06-01 12:00:00"},
            {"name": "new", "create_time": "2024-06-01 12:00:00"},
        ])
        rows = db.table("user").where_year("create_time", "2024").select()
        assert [row["name"] for row in rows] == ["new"]
