from __future__ import annotations

import datetime

import pytest

from jumpstudio.schema.quotas import QuotaPeriod
from jumpstudio.services.quota_buckets import period_start_date


def test_period_start_date_week_starts_monday_utc() -> None:
  now = datetime.datetime(2026, 2, 3, 12, 0, 0, tzinfo=datetime.UTC)  # Tuesday
  start = period_start_date(now=now, period=QuotaPeriod.WEEK)
  assert start == datetime.date(2026, 2, 2)  # Monday


def test_period_start_date_month_starts_first_utc() -> None:
  now = datetime.datetime(2026, 2, 3, 12, 0, 0, tzinfo=datetime.UTC)
  start = period_start_date(now=now, period=QuotaPeriod.MONTH)
  assert start == datetime.date(2026, 2, 1)


def test_period_start_date_day_uses_utc_calendar_day() -> None:
  # 23:30 in UTC-5 is already the next day in UTC.
  eastern = datetime.timezone(datetime.timedelta(hours=-5))
  now = datetime.datetime(2026, 2, 8, 23, 30, 0, tzinfo=eastern)
  assert period_start_date(now=now, period=QuotaPeriod.DAY) == datetime.date(2026, 2, 9)
  # The same instant opens a new guest day and a new user week (2026-02-09 is a Monday).
  assert period_start_date(now=now, period=QuotaPeriod.WEEK) == datetime.date(2026, 2, 9)


def test_period_start_date_rejects_naive_timestamps() -> None:
  with pytest.raises(ValueError):
    period_start_date(now=datetime.datetime(2026, 2, 3, 12, 0, 0), period=QuotaPeriod.DAY)
