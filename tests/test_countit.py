from datetime import datetime, timezone

import pytest

from sratim.showtimes.countit import (
    CountItError,
    InvalidShowtime,
    ShowtimeRecord,
    fetch_showtimes,
    parse_day,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        return self.response


def test_fetch_passes_key_and_returns_data(make_row):
    http = FakeSession(FakeResponse(payload={"data": [make_row(1)]}))

    rows = fetch_showtimes("secret", url="https://feed.example/showtimes", session=http)

    assert rows[0]["SHOWTIME_PID"] == 1
    assert http.calls == [("https://feed.example/showtimes", {"key": "secret"})]


def test_fetch_empty_feed_is_valid():
    http = FakeSession(FakeResponse(payload={"data": []}))
    assert fetch_showtimes("secret", session=http) == []


def test_fetch_requires_api_key():
    http = FakeSession(FakeResponse(payload={"data": []}))
    with pytest.raises(CountItError, match="SHOWTIMES_API_KEY"):
        fetch_showtimes("", session=http)
    assert http.calls == []


def test_fetch_http_error_includes_status_and_body():
    http = FakeSession(FakeResponse(status_code=401, text="invalid key"))
    with pytest.raises(CountItError, match="status: 401, body: invalid key"):
        fetch_showtimes("secret", session=http)


@pytest.mark.parametrize("payload, message", [
    ([1, 2], "invalid response format"),
    (ValueError("not json"), "invalid response format"),
    ({"data": {"a": 1}}, "not an array: dict"),
    ({"rows": []}, "not an array: NoneType"),
])
def test_fetch_rejects_malformed_payload(payload, message):
    http = FakeSession(FakeResponse(payload=payload))
    with pytest.raises(CountItError, match=message):
        fetch_showtimes("secret", session=http)


def test_fetch_rejects_missing_required_fields():
    http = FakeSession(FakeResponse(payload={"data": [{"SHOWTIME_PID": 1}]}))
    with pytest.raises(CountItError, match="MOVIE_Name, MoviePID"):
        fetch_showtimes("secret", session=http)


@pytest.mark.parametrize("value, expected", [
    ("2024-06-01T00:00:00", datetime(2024, 6, 1, tzinfo=timezone.utc)),
    ("2024-06-01", datetime(2024, 6, 1, tzinfo=timezone.utc)),
    ("2024-06-01T03:00:00Z", datetime(2024, 6, 1, 3, tzinfo=timezone.utc)),
    ("2024-06-01T03:00:00+03:00", datetime(2024, 6, 1, 0, tzinfo=timezone.utc)),
    ("01/06/2024", datetime(2024, 6, 1, tzinfo=timezone.utc)),
])
def test_parse_day(value, expected):
    assert parse_day(value) == expected


@pytest.mark.parametrize("value", [None, "", "next tuesday", 20240601])
def test_parse_day_rejects_garbage(value):
    with pytest.raises(InvalidShowtime):
        parse_day(value)


def test_record_maps_feed_columns(make_row):
    record = ShowtimeRecord.from_api(make_row("77", moviepid="100", GENRES=["Drama", "Comedy"]))

    assert record.showtime_pid == 77
    assert record.moviepid == 100
    assert record.movie_english == "Footnote"
    assert record.genres == "Drama, Comedy"
    assert record.available_seats == 42
    assert record.deep_link == "https://tickets.example/77"
    assert record.day == datetime(2024, 6, 1, tzinfo=timezone.utc)

    row = record.to_row()
    assert row["showtime_pid"] == 77
    assert row["imdbid"] == "tt1445520"


def test_record_tolerates_bad_seat_count(make_row):
    record = ShowtimeRecord.from_api(make_row(5, AvailableSEATS="n/a"))
    assert record.available_seats is None


@pytest.mark.parametrize("field", ["SHOWTIME_PID", "MoviePID"])
def test_record_rejects_bad_ids(make_row, field):
    with pytest.raises(InvalidShowtime, match=field):
        ShowtimeRecord.from_api(make_row(1, **{field: "abc"}))


@pytest.mark.parametrize("item", [None, "garbage", 42, ["SHOWTIME_PID", 1]])
def test_record_rejects_non_object_rows(item):
    with pytest.raises(InvalidShowtime, match="not an object"):
        ShowtimeRecord.from_api(item)
