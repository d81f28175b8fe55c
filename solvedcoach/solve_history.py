"""
Solve history sources.

First-solve dates come from the judge's public status page when it can be
scraped. When it cannot, callers substitute a synthetic recency proxy that
orders solves by problem ID. The proxy is an approximation, not ground truth.
"""

import logging
import re
import time
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional

import requests
from bs4 import BeautifulSoup

from .config import (
    BOJ_BASE_URL,
    BOJ_ACCEPTED_RESULT_ID,
    SCRAPER_TIMEOUT,
    SCRAPER_MAX_PAGES,
    SCRAPER_ROWS_PER_PAGE,
    SCRAPER_PAGE_DELAY,
    SCRAPER_USER_AGENT,
)
from .schemas import SolveRecord

logger = logging.getLogger(__name__)

# Status page times are Korea Standard Time
JUDGE_UTC_OFFSET = timedelta(hours=9)

_ABSOLUTE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})\s+(\d{2}):(\d{2}):(\d{2})$")
_RELATIVE_PATTERNS = [
    (re.compile(r"(\d+)\s*초\s*전"), "seconds"),
    (re.compile(r"(\d+)\s*분\s*전"), "minutes"),
    (re.compile(r"(\d+)\s*시간\s*전"), "hours"),
    (re.compile(r"(\d+)\s*일\s*전"), "days"),
]
_PROBLEM_HREF_RE = re.compile(r"/problem/(\d+)")


def parse_judge_time(text: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse a status-page timestamp into naive UTC.

    Accepts "YYYY-MM-DD HH:MM:SS" (judge local time) and relative forms
    such as "5분 전" or "3일 전". Returns None for anything else.
    """
    text = (text or "").strip()
    if not text:
        return None

    match = _ABSOLUTE_RE.match(text)
    if match:
        y, mo, d, h, mi, s = (int(g) for g in match.groups())
        try:
            return datetime(y, mo, d, h, mi, s) - JUDGE_UTC_OFFSET
        except ValueError:
            return None

    now = now or datetime.utcnow()
    for pattern, unit in _RELATIVE_PATTERNS:
        match = pattern.search(text)
        if match:
            return now - timedelta(**{unit: int(match.group(1))})

    return None


def parse_status_rows(html: str, now: Optional[datetime] = None) -> List[SolveRecord]:
    """Extract (problem, time) pairs from one status page."""
    soup = BeautifulSoup(html, "html.parser")
    table = soup.find("table", id="status-table")
    if table is None:
        return []

    body = table.find("tbody") or table
    records = []
    for row in body.find_all("tr"):
        cells = row.find_all("td")
        if len(cells) < 9:
            continue

        link = cells[2].find("a", href=True)
        if link is None:
            continue
        match = _PROBLEM_HREF_RE.search(link["href"])
        if not match:
            continue

        time_link = cells[8].find("a")
        time_text = (time_link.get("title") if time_link else None) or cells[8].get_text(strip=True)
        solved_at = parse_judge_time(time_text, now)
        if solved_at is None:
            continue

        records.append(SolveRecord(problem_id=int(match.group(1)), solved_at=solved_at))

    return records


def _count_rows(html: str) -> int:
    soup = BeautifulSoup(html, "html.parser")
    table = soup.find("table", id="status-table")
    if table is None:
        return 0
    body = table.find("tbody") or table
    return len(body.find_all("tr"))


def scrape_solve_dates(
    handle: str,
    max_pages: int = SCRAPER_MAX_PAGES,
    page_delay: float = SCRAPER_PAGE_DELAY,
    sleep=time.sleep,
    now: Optional[datetime] = None,
) -> Optional[Dict[int, datetime]]:
    """
    Scrape first accepted-solve times for a handle from the status page.

    Args:
        handle: Judge handle
        max_pages: Page cap (20 rows per page)
        page_delay: Pause between page requests
        sleep: Injected for tests
        now: Reference time for relative timestamps

    Returns:
        problemId -> earliest solve time, or None when scraping failed or
        found nothing
    """
    first_solve: Dict[int, datetime] = {}

    try:
        for page in range(1, max_pages + 1):
            response = requests.get(
                f"{BOJ_BASE_URL}/status",
                params={"user_id": handle, "result_id": BOJ_ACCEPTED_RESULT_ID, "page": page},
                headers={"User-Agent": SCRAPER_USER_AGENT},
                timeout=SCRAPER_TIMEOUT,
            )
            response.raise_for_status()

            html = response.text
            row_count = _count_rows(html)
            if row_count == 0 and page > 1:
                break

            for record in parse_status_rows(html, now):
                existing = first_solve.get(record.problem_id)
                if existing is None or record.solved_at < existing:
                    first_solve[record.problem_id] = record.solved_at

            if row_count < SCRAPER_ROWS_PER_PAGE:
                break

            if page_delay > 0:
                sleep(page_delay)

    except requests.exceptions.RequestException as e:
        logger.warning(f"Failed to scrape solve dates for {handle}: {e}")
        return None

    if not first_solve:
        logger.warning(f"No solve dates found on the status page for {handle}")
        return None

    logger.info(f"Scraped solve dates for {len(first_solve)} problems of {handle}")
    return first_solve


def synthetic_solve_dates(
    problem_ids: Iterable[int],
    now: Optional[datetime] = None,
) -> Dict[int, datetime]:
    """
    Recency proxy: the highest problem ID counts as solved now, and each
    lower ID one day earlier than the next.
    """
    now = now or datetime.utcnow()
    ordered = sorted(set(problem_ids))
    newest = len(ordered) - 1
    return {pid: now - timedelta(days=newest - i) for i, pid in enumerate(ordered)}


def resolve_solve_dates(
    handle: str,
    problem_ids: Iterable[int],
    scraper=scrape_solve_dates,
    now: Optional[datetime] = None,
) -> Dict[int, datetime]:
    """Scraped dates when the status page yields any, else the synthetic proxy."""
    scraped = scraper(handle) if scraper is not None else None
    if scraped:
        return scraped

    logger.warning(f"Using synthetic solve dates for {handle}")
    return synthetic_solve_dates(problem_ids, now)


def to_solve_records(dates: Mapping[int, datetime]) -> List[SolveRecord]:
    return [SolveRecord(problem_id=pid, solved_at=at) for pid, at in sorted(dates.items())]
