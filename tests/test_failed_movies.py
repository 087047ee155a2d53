import csv

from sratim.oplog import save_operation_log
from sratim.showtimes.failed_movies import (
    CSV_FIELDS,
    recent_failures,
    unique_movies,
    unmatched_movies,
    write_csv,
)
from sratim.showtimes.sync import OPERATION_NAME


def _feed(make_row):
    return [
        make_row(1, CITY="Haifa", AvailableSEATS="10"),
        make_row(2, CITY="Tel Aviv", AvailableSEATS="5"),
        make_row(3, CITY="Tel Aviv", AvailableSEATS="n/a"),
        make_row(4, moviepid=555, name="Zero Motivation", MOVIE_English="Zero Motivation"),
    ]


def test_unique_movies_aggregates_rows(make_row):
    movies = unique_movies(_feed(make_row))

    assert [m.movie_pid for m in movies] == [100, 555]
    footnote = movies[0]
    assert footnote.showtime_count == 3
    assert footnote.total_available_seats == 15
    assert footnote.cities == {"Haifa", "Tel Aviv"}
    assert footnote.deep_links[0] == "https://tickets.example/1"


def test_unmatched_movies_skip_catalog_titles(session, add_movie, make_row):
    add_movie("m1", countit_pid="100")

    unmatched = unmatched_movies(session, _feed(make_row))

    assert [m.movie_pid for m in unmatched] == [555]


def test_write_csv(tmp_path, make_row):
    path = write_csv(unique_movies(_feed(make_row)), tmp_path / "out" / "movies.csv")

    with path.open(encoding="utf-8-sig", newline="") as f:
        rows = list(csv.DictReader(f))

    assert list(rows[0]) == CSV_FIELDS
    assert rows[0]["moviePID"] == "100"
    assert rows[0]["cities"] == "Haifa; Tel Aviv"
    assert rows[1]["movieName"] == "Zero Motivation"


def test_recent_failures_reads_operation_logs(session):
    save_operation_log(session, OPERATION_NAME, {
        "traceId": "sync-1-aaa",
        "failedMovies": [{"moviepid": 555, "failureType": "MISSING_MOVIE"}],
    })
    save_operation_log(session, "other_operation", {"traceId": "x"})

    [failure] = recent_failures(session)

    assert failure["traceId"] == "sync-1-aaa"
    assert failure["failedMovies"][0]["moviepid"] == 555
    assert failure["timestamp"]
