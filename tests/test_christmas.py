import datetime as dt
import os
import pathlib
import sys

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_ENABLED", "false")

ROOT = pathlib.Path(__file__).resolve().parents[1]
BACKEND_PATH = ROOT / "src" / "backend"
if str(BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(BACKEND_PATH))

from timesbot.services.christmas import christmas_reply, days_until_christmas


def test_days_until_christmas_counts_this_year():
    assert days_until_christmas(dt.date(2024, 12, 1)) == 24


def test_days_until_christmas_rolls_over_after_the_day():
    assert days_until_christmas(dt.date(2024, 12, 26)) == 364


def test_christmas_day_greets():
    now = dt.datetime(2024, 12, 24, 16, 0, tzinfo=dt.timezone.utc)  # 25th, 01:00 at UTC+9
    reply = christmas_reply(now, utc_offset_minutes=9 * 60)
    assert reply.is_public
    assert reply.text == ":tada: Merry Christmas :gift: :santa:"
