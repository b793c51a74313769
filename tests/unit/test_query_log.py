"""Unit tests for the query log."""

import logging
from datetime import datetime

from fluentdb.database.query_log import QueryLogger, Statement, format_literal, inline_params


class TestFormatLiteral:
    """Test display rendering of bound values."""

    def test_scalars(self):
        assert format_literal(None) == 'NULL'
        assert format_literal(True) == '1'
        assert format_literal(42) == '42'
        assert format_literal(1.5) == '1.5'

    def test_strings_are_quoted(self):
        assert format_literal("O'Neil") == "'O''Neil'"

    def test_datetime(self):
        assert format_literal(datetime(2020, 1, 4, 20, 28, 33)) == "'2020-01-04 20:28:33'"

    def test_bytes(self):
        assert format_literal(b'\x01\xff') == "X'01ff'"


class TestInlineParams:
    """Test parameter inlining for display."""

    def test_no_params(self):
        assert inline_params('SELECT 1', None) == 'SELECT 1'

    def test_question_mark_placeholders(self):
        sql = inline_params('SELECT * FROM `events` WHERE `country` = ? AND `id` > ?', ['Ireland', 2])
        assert sql == "SELECT * FROM `events` WHERE `country` = 'Ireland' AND `id` > 2"

    def test_format_placeholders_unescape_percent(self):
        sql = inline_params("SELECT * FROM \"events\" WHERE \"title\" LIKE '%%M%%' AND \"id\" = %s", [3])
        assert sql == "SELECT * FROM \"events\" WHERE \"title\" LIKE '%M%' AND \"id\" = 3"

    def test_placeholder_inside_literal_is_kept(self):
        sql = inline_params("SELECT '?' AS mark, `id` FROM `events` WHERE `id` = ?", [1])
        assert sql == "SELECT '?' AS mark, `id` FROM `events` WHERE `id` = 1"

    def test_named_params(self):
        sql = inline_params('UPDATE events SET title=:title WHERE id=:id', {'title': 'Singing', 'id': 1})
        assert sql == "UPDATE events SET title='Singing' WHERE id=1"

    def test_named_params_ignore_casts_and_times(self):
        sql = inline_params("SELECT :day::date, '10:15:12'", {'day': '2020-01-04'})
        assert sql == "SELECT '2020-01-04'::date, '10:15:12'"


class TestQueryLogger:
    """Test log accumulation."""

    def test_disabled_log_stays_empty(self):
        log = QueryLogger()
        assert log.record(Statement('SELECT 1')) is None
        assert len(log) == 0
        assert log.last_query() is None
        assert log.last_statement() is None

    def test_enabled_log_appends_in_order(self):
        log = QueryLogger(enabled=True)
        first = Statement('SELECT * FROM `users` WHERE `id` = ?', [1])
        second = Statement('SELECT * FROM `events`')
        log.record(first)
        log.record(second)

        assert [entry.sql for entry in log.entries()] == [
            'SELECT * FROM `users` WHERE `id` = 1',
            'SELECT * FROM `events`',
        ]
        assert log.last_statement() is second
        assert log.last_query() == 'SELECT * FROM `events`'

    def test_entries_is_a_copy(self):
        log = QueryLogger(enabled=True)
        log.record(Statement('SELECT 1'))
        log.entries().clear()
        assert len(log) == 1

    def test_clear(self):
        log = QueryLogger(enabled=True)
        log.record(Statement('SELECT 1'))
        log.clear()
        assert log.entries() == []

    def test_slow_query_warning(self, caplog):
        log = QueryLogger(slow_query_threshold=0.5)
        with caplog.at_level(logging.WARNING, logger='fluentdb'):
            log.record(Statement('SELECT 1', duration=2.0))

        assert any('Slow query' in record.getMessage() for record in caplog.records)
