from datetime import date, datetime, time, timedelta

import pytest

from normalize import (
    file_ext_from_url,
    hhmmss_to_seconds,
    is_valid_image_url,
    normalize_for_property,
    parse_image_formula,
    parse_percent,
    safe_parse_iso_date,
    sanitize_filename,
    youtube_thumb_from_id,
)

RULES = dict(
    percent_props=("STR", "APV"),
    duration_props=("AVD",),
    date_props=("Publish Date",),
    image_prop="Thumbnail",
)


@pytest.mark.parametrize(
    "raw, expected",
    [("44.5", 0.445), ("44.5%", 0.445), (0.2, 0.2), ("1", 1.0), ("1,250", 12.5), (" 7 % ", 0.07)],
)
def test_percent(raw, expected):
    assert parse_percent(raw) == pytest.approx(expected)


def test_percent_non_numeric_is_absent():
    assert parse_percent("n/a") is None


@pytest.mark.parametrize(
    "raw, expected",
    [("1:02:03", 3723), ("02:03", 123), ("90", 90), (90, 90), (time(0, 2, 3), 123), (timedelta(minutes=1), 60)],
)
def test_duration(raw, expected):
    assert hhmmss_to_seconds(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "1:xx", "1:2:3:4", ""])
def test_duration_unparseable(raw):
    assert hhmmss_to_seconds(raw) is None


@pytest.mark.parametrize(
    "raw", ["2024-03-05", "March 5, 2024", "5 Mar 2024", "2024/03/05", datetime(2024, 3, 5, 14, 30), date(2024, 3, 5)]
)
def test_date_canonical(raw):
    assert safe_parse_iso_date(raw) == "2024-03-05"


def test_date_unparseable():
    assert safe_parse_iso_date("xyz") is None


def test_image_url_validity():
    assert is_valid_image_url("https://x.com/a.png")
    assert is_valid_image_url("HTTP://x.com/a.JPEG?size=2")
    assert not is_valid_image_url("ftp://x.com/a.png")
    assert not is_valid_image_url("https://x.com/page")
    assert is_valid_image_url("https://i.ytimg.com/vi/abc/hqdefault.jpg")
    assert is_valid_image_url("https://i.ytimg.com/vi/abc/maxres")
    assert not is_valid_image_url("")


def test_image_formula_and_thumb_helpers():
    assert parse_image_formula('=IMAGE("https://x.com/a.png", 1)') == "https://x.com/a.png"
    assert parse_image_formula("=SUM(A1:A2)") == ""
    assert youtube_thumb_from_id(" abc ") == "https://i.ytimg.com/vi/abc/hqdefault.jpg"
    assert youtube_thumb_from_id("") == ""
    assert file_ext_from_url("https://x.com/a.JPG?x=1", "png") == "jpeg"
    assert file_ext_from_url("https://i.ytimg.com/vi/abc/maxres", "jpg") == "jpg"
    assert sanitize_filename("thumb-My Video #1", "jpeg") == "thumb-My_Video_1.jpeg"


def test_normalize_image_cell():
    raw = "https://x.com/a.png, notaurl, ftp://x.com/b.png,https://x.com/c.gif"
    assert normalize_for_property("Thumbnail", raw, "", **RULES) == ["https://x.com/a.png", "https://x.com/c.gif"]
    assert normalize_for_property("Thumbnail", "junk", "", **RULES) is None


def test_normalize_image_from_formula_when_cell_empty():
    fx = '=IMAGE("https://x.com/f.webp")'
    assert normalize_for_property("Thumbnail", "", fx, **RULES) == ["https://x.com/f.webp"]
    assert normalize_for_property("Thumbnail", None, "", **RULES) is None


def test_normalize_routes_by_property_name():
    assert normalize_for_property("str", "50", **RULES) == pytest.approx(0.5)
    assert normalize_for_property("AVD", "1:00", **RULES) == 60
    assert normalize_for_property("publish date", "2024-03-05", **RULES) == "2024-03-05"
    assert normalize_for_property("Video ID", "abc", **RULES) == "abc"
    assert normalize_for_property("Video ID", "   ", **RULES) is None


def test_prefixed_image_formula():
    fx = '=_xlfn.IMAGE("https://x.com/a.png", "alt")'
    assert parse_image_formula(fx) == "https://x.com/a.png"
    assert normalize_for_property("Thumbnail", None, fx, **RULES) == ["https://x.com/a.png"]


@pytest.mark.parametrize("raw", ["inf", "-inf", "nan", "1e400", float("inf")])
def test_non_finite_values_are_absent(raw):
    assert parse_percent(raw) is None
    assert hhmmss_to_seconds(raw) is None
