import pytest

from reviews_worker.etl import normalize as normalizer

PLACE_URL = "https://maps.google.com/maps?q=place_id:ChIJabc123"


def iframe(src):
    return f'<iframe src="{src}" width="600" height="450" style="border:0;" allowfullscreen="" loading="lazy"></iframe>'


@pytest.mark.parametrize(
    "raw, expected",
    [
        (PLACE_URL, "place_id:ChIJabc123"),
        ("https://www.google.com/maps/search/?api=1&query=Cafe&place_id=ChIJxyz-9_0", "place_id:ChIJxyz-9_0"),
        ("https://maps.google.com/?cid=1234567890123", "cid:1234567890123"),
        ("https://maps.google.com/maps?q=place_id%3AChIJencoded", "place_id:ChIJencoded"),
        (
            "https://www.google.com/maps/place/Joe's+Cafe/@40.7,-74.0,17z/data=!3m1!4b1!4m6!3m5!1s0x0:0x1!8m2!3d40.7!4d-74.0!16s%2Fg%2F11c1q2w3e4",
            "place_id:g/11c1q2w3e4",
        ),
        (
            "https://www.google.com/maps/embed?pb=!1m18!1m12!3m3!1d1!2d2!3d3!16s%252Fg%252F11x9y8z7",
            "place_id:g/11x9y8z7",
        ),
    ],
)
def test_extracts_identifier_from_url(raw, expected):
    result = normalizer.normalize(raw)
    assert result.candidate_identifier == expected


def test_iframe_src_is_used_as_input():
    wrapped = normalizer.normalize(iframe(PLACE_URL))
    bare = normalizer.normalize(PLACE_URL)
    assert wrapped == bare
    assert wrapped.cleaned_text == PLACE_URL


def test_iframe_with_escaped_ampersands_matches_bare_url():
    url = "https://www.google.com/maps/embed/v1/place?key=abc&q=place_id:ChIJamp"
    wrapped = normalizer.normalize(iframe(url.replace("&", "&amp;")))
    assert wrapped == normalizer.normalize(url)
    assert wrapped.candidate_identifier == "place_id:ChIJamp"


def test_plain_text_is_passed_through():
    result = normalizer.normalize("  Joe's Cafe, 12 Main St, Springfield  ")
    assert result.candidate_identifier is None
    assert result.cleaned_text == "Joe's Cafe, 12 Main St, Springfield"


def test_url_without_identifier_is_passed_through():
    url = "https://maps.app.goo.gl/AbCdEf123"
    result = normalizer.normalize(url)
    assert result.candidate_identifier is None
    assert result.cleaned_text == url


def test_existing_identifier_is_idempotent():
    first = normalizer.normalize(PLACE_URL)
    again = normalizer.normalize(first.candidate_identifier)
    assert again.candidate_identifier == first.candidate_identifier


@pytest.mark.parametrize(
    "raw",
    ["https://%zz%/maps?cid=abc", "http://[broken", "https://maps.google.com/?q=place_id:", "<iframe></iframe>"],
)
def test_malformed_input_never_raises(raw):
    result = normalizer.normalize(raw)
    assert result.candidate_identifier is None


def test_sixteen_s_without_g_path_is_ignored():
    url = "https://www.google.com/maps/place/X/data=!4m2!16s%2Fm%2F0abc"
    assert normalizer.normalize(url).candidate_identifier is None
