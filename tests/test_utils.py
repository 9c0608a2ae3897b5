from datetime import datetime

import pytest

from news_archiver.core.errors import InvalidURLError
from news_archiver.core.utils import (
    archive_domain,
    article_id_for,
    make_absolute_url,
    normalize_title,
    parse_datetime_loose,
    registrable_domain,
    slugify,
    staging_key_for,
)


def test_slugify_caps_length_and_falls_back():
    assert slugify("Council approves NEW harbour budget!") == "council-approves-new-harbour-budget"
    assert slugify("???") == "untitled"
    long_slug = slugify("word " * 40)
    assert len(long_slug) <= 80
    assert not long_slug.endswith("-")


def test_ids_are_stable_hashes():
    url = "https://example.com/news/1"
    assert article_id_for(url) == article_id_for(url)
    assert article_id_for(url).startswith("article_")
    assert len(article_id_for(url)) == len("article_") + 12
    assert len(staging_key_for(url)) == 12
    assert article_id_for(url) != article_id_for(url + "2")


def test_normalize_title():
    assert normalize_title("  Harbour Budget ") == "harbour budget"
    assert normalize_title("") == ""


def test_make_absolute_url():
    base = "https://www.example.com/news/index.html"
    assert make_absolute_url("story-1", base) == "https://www.example.com/news/story-1"
    assert make_absolute_url("//cdn.example.com/a.jpg", base) == "https://cdn.example.com/a.jpg"
    assert make_absolute_url("/a#top", base) == "https://www.example.com/a"
    with pytest.raises(InvalidURLError):
        make_absolute_url("javascript:void(0)", base)
    with pytest.raises(InvalidURLError):
        make_absolute_url("   ", base)


def test_domains():
    assert registrable_domain("https://news.bbc.co.uk/world") == "bbc.co.uk"
    assert registrable_domain("https://www.example.com/") == "example.com"
    assert archive_domain("https://www.Example.com/news") == "example.com"
    assert archive_domain("https://news.example.com/") == "news.example.com"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("2024-01-15T09:30:00", datetime(2024, 1, 15, 9, 30)),
        ("2024/01/15 09:30", datetime(2024, 1, 15, 9, 30)),
        ("20240115T093000", datetime(2024, 1, 15, 9, 30)),
        ("January 15, 2024 3:04 PM", datetime(2024, 1, 15, 15, 4)),
        ("Published Jan 5th, 2024", datetime(2024, 1, 5)),
        ("15 January 2024", datetime(2024, 1, 15)),
    ],
)
def test_parse_datetime_loose(raw, expected):
    assert parse_datetime_loose(raw) == expected


def test_parse_datetime_loose_rejects_garbage():
    assert parse_datetime_loose("yesterday") is None
    assert parse_datetime_loose(None) is None
