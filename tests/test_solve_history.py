"""
Unit Tests for solve-date sources (status page scraper and synthetic proxy).
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests
from solvedcoach.solve_history import (
    parse_judge_time,
    parse_status_rows,
    resolve_solve_dates,
    scrape_solve_dates,
    synthetic_solve_dates,
    to_solve_records,
)

from conftest import NOW


def _row(problem_id, when, submission_id=1):
    return (
        "<tr>"
        f"<td>{submission_id}</td><td><a href='/user/abc'>abc</a></td>"
        f"<td><a href='/problem/{problem_id}'>{problem_id}</a></td>"
        "<td>맞았습니다!!</td><td>2020 KB</td><td>0 ms</td><td>C++17</td><td>512 B</td>"
        f"<td><a title='{when}' class='real-time-update'>1일 전</a></td>"
        "</tr>"
    )


def _page(rows):
    return (
        "<html><body><table id='status-table'><thead><tr><th>#</th></tr></thead>"
        f"<tbody>{''.join(rows)}</tbody></table></body></html>"
    )


def _response(html):
    response = MagicMock()
    response.text = html
    response.raise_for_status.return_value = None
    return response


class TestParseJudgeTime:
    """Tests for status-page timestamp parsing."""

    def test_absolute_time_is_shifted_to_utc(self):
        assert parse_judge_time("2024-01-15 14:30:00") == datetime(2024, 1, 15, 5, 30, 0)

    def test_relative_forms(self):
        assert parse_judge_time("30초 전", NOW) == NOW - timedelta(seconds=30)
        assert parse_judge_time("5분 전", NOW) == NOW - timedelta(minutes=5)
        assert parse_judge_time("3 시간 전", NOW) == NOW - timedelta(hours=3)
        assert parse_judge_time("2일 전", NOW) == NOW - timedelta(days=2)

    def test_unparseable(self):
        assert parse_judge_time("") is None
        assert parse_judge_time("yesterday") is None
        assert parse_judge_time("2024-13-45 00:00:00") is None


class TestParseStatusRows:
    """Tests for status table parsing."""

    def test_uses_title_attribute(self):
        html = _page([_row(1000, "2024-01-15 14:30:00")])
        records = parse_status_rows(html, NOW)
        assert len(records) == 1
        assert records[0].problem_id == 1000
        assert records[0].solved_at == datetime(2024, 1, 15, 5, 30, 0)

    def test_missing_table(self):
        assert parse_status_rows("<html></html>") == []


class TestScrapeSolveDates:
    """Tests for the paginated scraper."""

    @patch("solvedcoach.solve_history.requests.get")
    def test_keeps_earliest_solve(self, mock_get):
        mock_get.return_value = _response(_page([
            _row(1000, "2024-02-01 10:00:00", 3),
            _row(1000, "2024-01-01 10:00:00", 2),
            _row(1001, "2024-01-20 10:00:00", 1),
        ]))

        dates = scrape_solve_dates("abc", sleep=MagicMock(), now=NOW)

        assert dates == {
            1000: datetime(2024, 1, 1, 1, 0, 0),
            1001: datetime(2024, 1, 20, 1, 0, 0),
        }
        # a short page ends pagination
        assert mock_get.call_count == 1
        params = mock_get.call_args.kwargs["params"]
        assert params == {"user_id": "abc", "result_id": 4, "page": 1}

    @patch("solvedcoach.solve_history.requests.get")
    def test_pages_until_short_page(self, mock_get):
        full = _page([_row(2000 + i, "2024-01-01 00:00:00", i) for i in range(20)])
        short = _page([_row(3000, "2023-01-01 00:00:00")])
        mock_get.side_effect = [_response(full), _response(short)]
        sleep = MagicMock()

        dates = scrape_solve_dates("abc", sleep=sleep, now=NOW)

        assert len(dates) == 21
        assert mock_get.call_count == 2
        sleep.assert_called_once()

    @patch("solvedcoach.solve_history.requests.get")
    def test_respects_page_cap(self, mock_get):
        full = _page([_row(2000 + i, "2024-01-01 00:00:00", i) for i in range(20)])
        mock_get.return_value = _response(full)

        scrape_solve_dates("abc", max_pages=3, sleep=MagicMock(), now=NOW)
        assert mock_get.call_count == 3

    @patch("solvedcoach.solve_history.requests.get")
    def test_failure_returns_none(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("blocked")
        assert scrape_solve_dates("abc", sleep=MagicMock()) is None

    @patch("solvedcoach.solve_history.requests.get")
    def test_nothing_found_returns_none(self, mock_get):
        mock_get.return_value = _response(_page([]))
        assert scrape_solve_dates("abc", sleep=MagicMock()) is None


class TestSyntheticDates:
    """Tests for the problem-ID recency proxy."""

    def test_newest_id_is_now(self):
        dates = synthetic_solve_dates([1003, 1000, 1001], NOW)
        assert dates[1003] == NOW
        assert dates[1001] == NOW - timedelta(days=1)
        assert dates[1000] == NOW - timedelta(days=2)

    def test_empty(self):
        assert synthetic_solve_dates([], NOW) == {}

    def test_resolve_prefers_scraped(self):
        scraped = {1000: NOW - timedelta(days=5)}
        assert resolve_solve_dates("abc", [1000, 1001], scraper=lambda h: scraped, now=NOW) == scraped

    def test_resolve_falls_back(self):
        dates = resolve_solve_dates("abc", [1000, 1001], scraper=lambda h: None, now=NOW)
        assert dates == {1000: NOW - timedelta(days=1), 1001: NOW}

    def test_resolve_without_scraper(self):
        dates = resolve_solve_dates("abc", [7], scraper=None, now=NOW)
        assert dates == {7: NOW}

    def test_to_solve_records(self):
        records = to_solve_records({2: NOW, 1: NOW - timedelta(days=1)})
        assert [r.problem_id for r in records] == [1, 2]
