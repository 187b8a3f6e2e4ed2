from datetime import datetime, timezone

from reviews_worker.etl import sanitize


def test_sanitize_dedupes_and_drops_blanks():
    assert sanitize.sanitize(["a", "", "a", "  ", "b"]) == ["a", "b"]


def test_sanitize_caps_in_original_order():
    raw = {"reviews": [{"text": f"review {i}"} for i in range(300)]}
    result = sanitize.sanitize(raw, limit=250)
    assert len(result) == 250
    assert result[0] == "review 0"
    assert result[-1] == "review 249"


def test_sanitize_outscraper_shape():
    raw = {
        "id": "job-1",
        "status": "Success",
        "data": [
            [
                {
                    "name": "Joe's Cafe",
                    "reviews": 2,
                    "reviews_data": [
                        {"review_text": "  Great coffee  "},
                        {"review_text": None},
                        {"review_text": "Slow service"},
                    ],
                }
            ]
        ],
    }
    assert sanitize.sanitize(raw) == ["Great coffee", "Slow service"]
    assert sanitize.extract_place_name(raw) == "Joe's Cafe"


def test_sanitize_reads_known_text_fields():
    raw = {
        "reviews": [
            {"snippet": "from serpapi"},
            {"text": {"text": "from places", "languageCode": "en"}},
            {"content": "from content"},
            {"review": "from review"},
            {"rating": 5},
            "bare string",
            42,
        ]
    }
    assert sanitize.sanitize(raw) == ["from serpapi", "from places", "from content", "from review", "bare string"]


def test_sanitize_unknown_shape_is_empty():
    assert sanitize.sanitize(None) == []
    assert sanitize.sanitize({"status": "Pending"}) == []


def test_extract_place_name_variants():
    assert sanitize.extract_place_name({"place_info": {"title": "Serp Place"}, "reviews": []}) == "Serp Place"
    assert sanitize.extract_place_name({"displayName": {"text": "New Place"}}) == "New Place"
    assert sanitize.extract_place_name({"reviews": []}) is None


def test_filter_by_cutoff_keeps_undated_records():
    cutoff = datetime(2024, 1, 1, tzinfo=timezone.utc)
    records = [
        {"publishTime": "2024-03-01T10:00:00Z", "id": "new"},
        {"publishTime": "2023-06-01T10:00:00Z", "id": "old"},
        {"id": "undated"},
        {"iso_date": "not a date", "id": "garbled"},
    ]
    kept = sanitize.filter_by_cutoff(records, cutoff, ("publishTime", "iso_date"))
    assert [record["id"] for record in kept] == ["new", "undated", "garbled"]
    assert sanitize.filter_by_cutoff(records, None, ("publishTime",)) == records


def test_parse_review_time():
    assert sanitize.parse_review_time(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert sanitize.parse_review_time("2024-05-01T00:00:00") == datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert sanitize.parse_review_time(True) is None
    assert sanitize.parse_review_time("") is None
