from news_archiver.core.storage.exports import CSV_COLUMNS, build_summary, csv_row
from news_archiver.core.storage.render import archive_readme, chronology_markdown


def _record(i, publish, author="Jane Smith", tags=(), images=0, videos=0):
    return {
        "id": f"article_{i:012d}",
        "url": f"https://example.com/news/{i}",
        "title": f"Story number {i}",
        "author": author,
        "publishDate": publish,
        "tags": list(tags),
        "wordCount": 100 * i,
        "mediaFiles": {
            "images": [{"localPath": f"x/{n}.jpg"} for n in range(images)],
            "videos": [{"originalUrl": "https://youtu.be/x", "kind": "embed"}] * videos,
        },
        "folderPath": f"articles/2024/01-January/0{i}/story-number-{i}-abc",
        "scrapedAt": "2024-02-01T00:00:00+00:00",
    }


def test_summary_counts():
    records = [
        _record(1, "2024-01-01T08:00:00", tags=["a", "b"], images=2),
        _record(2, "2024-02-03T08:00:00", author="Unknown", tags=["b"], videos=1),
        _record(3, "not a date", author="Ann Lee"),
    ]
    summary = build_summary("example.com", records, "https://example.com/")
    assert summary["totalArticles"] == 3
    assert summary["totalWords"] == 600
    assert summary["totalImages"] == 2
    assert summary["totalVideos"] == 1
    assert summary["authors"] == ["Ann Lee", "Jane Smith"]
    assert list(summary["tags"].items()) == [("b", 2), ("a", 1)]
    assert summary["dateRange"]["earliest"] == "2024-01-01T08:00:00"
    assert summary["dateRange"]["latest"] == "2024-02-03T08:00:00"

    readme = archive_readme(summary)
    assert "**Total Articles:** 3" in readme
    assert "- b (2)" in readme


def test_csv_row_has_fixed_columns():
    row = csv_row(_record(1, "2024-01-01", tags=["a", "b"], images=1))
    assert list(row) == CSV_COLUMNS
    assert row["tags"] == "a; b"
    assert row["imageCount"] == 1
    assert row["videoCount"] == 0


def test_chronology_groups_newest_first_with_undated_section():
    records = [
        _record(1, "2023-12-30T08:00:00"),
        _record(2, "2024-01-05T08:00:00"),
        _record(3, "2024-01-20T08:00:00"),
        _record(4, ""),
    ]
    text = chronology_markdown("example.com", records)
    assert text.startswith("# example.com: articles by date")
    assert text.index("## 2024") < text.index("### January") < text.index("## 2023")
    assert text.index("Story number 3") < text.index("Story number 2")
    assert "## Undated" in text
    assert "(articles/2024/01-January/04/story-number-4-abc/article.md)" in text
