import csv
import json

from news_archiver.core.config import ArchiveOptions
from news_archiver.core.models import Article, ImageRef, MediaAsset, MediaManifest
from news_archiver.core.storage.store import ArchiveStore
from news_archiver.core.utils import md5_hex

BODY = "The council approved the harbour budget after a long debate. " * 5


def _article(url="https://example.com/news/harbour", title="Council approves harbour budget", **kw):
    fields = dict(
        url=url,
        title=title,
        author="Jane Smith",
        publish_date="2024-01-15T09:30:00",
        body_text=BODY,
        tags=["Politics", "Harbour"],
        raw_markup="<html><body>original</body></html>",
        extracted_at="2024-01-16T00:00:00+00:00",
    )
    fields.update(kw)
    return Article(**fields)


def _store(tmp_path, **options) -> ArchiveStore:
    store = ArchiveStore(tmp_path, "example.com", "https://example.com/", ArchiveOptions(**options))
    store.initialize()
    return store


def _staged(store: ArchiveStore, key: str, name: str, data: bytes) -> MediaAsset:
    path = store.staging_root / key / "images" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return MediaAsset(
        source_url=f"https://cdn.example.com/{name}",
        local_path=path.relative_to(store.domain_dir).as_posix(),
        kind="image",
        size_bytes=len(data),
    )


def test_commit_writes_dated_entry(tmp_path):
    store = _store(tmp_path)
    entry = store.commit(_article())

    assert entry.folder_path == (
        "articles/2024/01-January/15/council-approves-harbour-budget-20240115-093000"
    )
    entry_dir = store.domain_dir / entry.folder_path
    for name in ("article.json", "article.html", "article.md", "README.txt"):
        assert (entry_dir / name).exists()
    record = json.loads((entry_dir / "article.json").read_text(encoding="utf-8"))
    assert record["id"] == "article_" + md5_hex("https://example.com/news/harbour")[:12]
    assert record["folderPath"] == entry.folder_path
    assert record["wordCount"] == len(BODY.split())
    assert entry.metadata == record
    markdown = (entry_dir / "article.md").read_text(encoding="utf-8")
    assert markdown.startswith("# Council approves harbour budget")
    assert "**Tags:** Politics, Harbour" in markdown


def test_midnight_publish_time_uses_url_hash(tmp_path):
    store = _store(tmp_path)
    url = "https://example.com/news/midnight"
    entry = store.commit(_article(url=url, publish_date="2024-03-02"))
    assert entry.folder_path == (
        f"articles/2024/03-March/02/council-approves-harbour-budget-{md5_hex(url)[:8]}"
    )


def test_optional_renderings_respect_options(tmp_path):
    store = _store(tmp_path, save_html=False, save_markdown=False)
    entry = store.commit(_article())
    entry_dir = store.domain_dir / entry.folder_path
    assert not (entry_dir / "article.html").exists()
    assert not (entry_dir / "article.md").exists()
    assert (entry_dir / "article.json").exists()


def test_commit_moves_staged_media(tmp_path):
    store = _store(tmp_path)
    asset = _staged(store, "abc123", "photo.jpg", b"JPEG")
    manifest = MediaManifest(staging_dir=store.staging_root / "abc123", images=[asset])
    article = _article(images=[ImageRef(asset.source_url, alt="Harbour")])

    entry = store.commit(article, manifest)

    assert asset.local_path == f"{entry.folder_path}/media/photo.jpg"
    assert (store.domain_dir / asset.local_path).read_bytes() == b"JPEG"
    assert not (store.staging_root / "abc123").exists()
    assert entry.image_count == 1
    record = json.loads(
        (store.domain_dir / entry.folder_path / "article.json").read_text(encoding="utf-8")
    )
    assert record["mediaFiles"]["images"][0]["localPath"] == asset.local_path
    markdown = (store.domain_dir / entry.folder_path / "article.md").read_text(encoding="utf-8")
    assert "(media/photo.jpg)" in markdown
    readme = (store.domain_dir / entry.folder_path / "README.txt").read_text(encoding="utf-8")
    assert "media/photo.jpg" in readme


def test_failed_move_keeps_staged_path(tmp_path):
    store = _store(tmp_path)
    good = _staged(store, "k", "good.jpg", b"OK")
    lost = MediaAsset(
        source_url="https://cdn.example.com/lost.jpg",
        local_path=".staging/k/images/lost.jpg",
        kind="image",
    )
    manifest = MediaManifest(staging_dir=store.staging_root / "k", images=[lost, good])

    entry = store.commit(_article(), manifest)

    assert lost.local_path == ".staging/k/images/lost.jpg"
    assert good.local_path.endswith("/media/good.jpg")
    assert (store.domain_dir / entry.folder_path / "article.json").exists()


def test_duplicates_by_url_and_normalized_title(tmp_path):
    store = _store(tmp_path)
    assert not store.is_duplicate(_article())
    store.commit(_article())
    assert store.is_duplicate(_article())
    assert store.is_duplicate_url("https://example.com/news/harbour")
    assert store.is_duplicate(
        _article(url="https://example.com/news/other", title="  COUNCIL approves harbour budget ")
    )
    assert not store.is_duplicate(
        _article(url="https://example.com/news/other", title="Something else entirely")
    )


def test_index_reaches_disk_only_on_export(tmp_path):
    store = _store(tmp_path)
    store.commit(_article())
    assert not (store.domain_dir / "index.json").exists()
    store.export_all()
    index = json.loads((store.domain_dir / "index.json").read_text(encoding="utf-8"))
    assert index["urls"] == ["https://example.com/news/harbour"]
    assert index["titles"] == ["council approves harbour budget"]
    assert index["totalArticles"] == 1


def test_export_all_and_reopen(tmp_path):
    store = _store(tmp_path)
    store.commit(_article())
    store.commit(
        _article(
            url="https://example.com/news/ferry",
            title="Ferry timetable changes announced",
            author="Sam Lee",
            publish_date="2023-11-02T14:00:00",
            tags=["Transport", "Harbour"],
        )
    )
    summary = store.export_all()

    assert summary["totalArticles"] == 2
    assert summary["authors"] == ["Jane Smith", "Sam Lee"]
    assert summary["tags"] == {"Harbour": 2, "Politics": 1, "Transport": 1}
    assert summary["dateRange"] == {
        "earliest": "2023-11-02T14:00:00",
        "latest": "2024-01-15T09:30:00",
    }
    for name in ("articles.json", "articles.csv", "summary.json", "CHRONOLOGY.md", "README.md"):
        assert (store.domain_dir / name).exists()

    with (store.domain_dir / "articles.csv").open(encoding="utf-8", newline="") as fh:
        rows = list(csv.DictReader(fh))
    assert [r["title"] for r in rows] == [
        "Council approves harbour budget",
        "Ferry timetable changes announced",
    ]
    assert rows[0]["tags"] == "Politics; Harbour"

    chronology = (store.domain_dir / "CHRONOLOGY.md").read_text(encoding="utf-8")
    assert chronology.index("## 2024") < chronology.index("## 2023")

    reopened = ArchiveStore(tmp_path, "example.com")
    reopened.initialize()
    assert len(reopened.records) == 2
    assert reopened.is_duplicate_url("https://example.com/news/ferry")


def test_same_title_same_day_gets_separate_folders(tmp_path):
    store = _store(tmp_path)
    title = "Same headline for both"
    morning = store.commit(_article(url="https://example.com/news/am", title=title))
    evening = store.commit(
        _article(url="https://example.com/news/pm", title=title, publish_date="2024-01-15T17:05:00")
    )

    prefix = "articles/2024/01-January/15/same-headline-for-both-"
    assert morning.folder_path == prefix + "20240115-093000"
    assert evening.folder_path == prefix + "20240115-170500"
    for entry in (morning, evening):
        assert (store.domain_dir / entry.folder_path / "article.json").exists()
    assert len(store.records) == 2


def test_repeated_export_is_stable(tmp_path):
    store = _store(tmp_path)
    store.commit(_article())
    store.commit(
        _article(
            url="https://example.com/news/ferry",
            title="Ferry timetable changes announced",
            author="Sam Lee",
            tags=["Transport", "Harbour", "Politics"],
        )
    )

    def exported():
        summary = store.export_all()
        on_disk = json.loads((store.domain_dir / "summary.json").read_text(encoding="utf-8"))
        summary.pop("generatedAt")
        on_disk.pop("generatedAt")
        return summary, on_disk

    first = exported()
    second = exported()
    assert first == second
    assert first[0] == first[1]
    assert list(first[0]["tags"]) == ["Harbour", "Politics", "Transport"]


def test_corrupt_index_is_tolerated(tmp_path):
    domain_dir = tmp_path / "example.com"
    domain_dir.mkdir()
    (domain_dir / "index.json").write_text("{not json", encoding="utf-8")
    (domain_dir / "articles.json").write_text("[oops", encoding="utf-8")
    store = ArchiveStore(tmp_path, "example.com")
    store.initialize()
    assert store.index.urls == set()
    assert store.records == []
    store.commit(_article())
    store.export_all()
    assert json.loads((domain_dir / "articles.json").read_text(encoding="utf-8"))[0]["url"] == (
        "https://example.com/news/harbour"
    )
