from typing import Dict, List

import requests

from news_archiver.core.config import MediaConfig
from news_archiver.core.media.acquirer import MediaAcquirer, extension_for
from news_archiver.core.models import Article, ImageRef, VideoRef
from news_archiver.core.storage.store import ArchiveStore
from news_archiver.core.utils import staging_key_for


class DummyResp:
    def __init__(self, body: bytes = b"", status_code: int = 200, headers=None):
        self.body = body
        self.status_code = status_code
        self.headers = headers or {}
        self.closed = False

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), 4):
            yield self.body[i : i + 4]

    def close(self):
        self.closed = True


class DummySession:
    def __init__(self, responses: Dict[str, DummyResp]):
        self.responses = responses
        self.calls: List[str] = []

    def get(self, url, timeout=None, stream=False):
        self.calls.append(url)
        resp = self.responses.get(url)
        if resp is None:
            raise requests.ConnectionError(f"no route to {url}")
        return resp


def _article(url: str, images=(), videos=()) -> Article:
    return Article(
        url=url,
        title="A headline for the test",
        author="Unknown",
        publish_date="2024-01-15T09:30:00",
        body_text="x" * 200,
        images=list(images),
        videos=list(videos),
    )


def _acquirer(tmp_path, responses, config=None):
    session = DummySession(responses)
    return MediaAcquirer.for_archive(tmp_path, session, config), session


def test_extension_for():
    assert extension_for("https://e.com/a", "image/png") == ".png"
    assert extension_for("https://e.com/clip.webm", "application/octet-stream") == ".webm"
    assert extension_for("https://e.com/clip.WEBM?x=1", None) == ".webm"
    assert extension_for("https://e.com/download", "") == ".bin"


def test_acquire_stages_images_and_records_embeds(tmp_path):
    img = "https://cdn.example.com/photo.jpg"
    vid = "https://cdn.example.com/clip"
    acquirer, session = _acquirer(
        tmp_path,
        {
            img: DummyResp(b"JPEGDATA", headers={"Content-Type": "image/png"}),
            vid: DummyResp(b"VIDEO", headers={"Content-Type": "application/octet-stream"}),
        },
    )
    article = _article(
        "https://example.com/news/1",
        images=[ImageRef(img, alt="Harbour"), ImageRef(img)],
        videos=[VideoRef(vid), VideoRef("https://www.youtube.com/embed/x", kind="embed")],
    )
    manifest = acquirer.acquire(article, staging_key_for(article.url))

    assert session.calls == [img, vid]
    assert len(manifest.images) == 1
    asset = manifest.images[0]
    assert asset.alt == "Harbour"
    assert asset.size_bytes == len(b"JPEGDATA")
    assert asset.local_path.startswith(f".staging/{staging_key_for(article.url)}/images/")
    assert asset.local_path.endswith(".png")
    assert (tmp_path / asset.local_path).read_bytes() == b"JPEGDATA"
    assert manifest.videos[0].local_path.endswith(".bin")
    assert manifest.embeds == ["https://www.youtube.com/embed/x"]
    assert manifest.to_dict()["videos"][-1] == {
        "originalUrl": "https://www.youtube.com/embed/x",
        "kind": "embed",
    }


def test_same_url_downloaded_once_per_run(tmp_path):
    img = "https://cdn.example.com/logo-large.jpg"
    acquirer, session = _acquirer(
        tmp_path, {img: DummyResp(b"IMG", headers={"Content-Type": "image/jpeg"})}
    )
    first = acquirer.acquire(_article("https://example.com/news/1", [ImageRef(img)]), "k1")
    second = acquirer.acquire(_article("https://example.com/news/2", [ImageRef(img)]), "k2")
    assert session.calls == [img]
    assert len(first.images) == 1
    assert len(second.images) == 1
    assert second.images[0] is first.images[0]
    assert second.images[0].local_path == first.images[0].local_path


def test_shared_image_listed_in_both_committed_entries(tmp_path):
    img = "https://cdn.example.com/shared-photo.jpg"
    domain_dir = tmp_path / "example.com"
    acquirer, session = _acquirer(
        domain_dir, {img: DummyResp(b"SHARED", headers={"Content-Type": "image/jpeg"})}
    )
    store = ArchiveStore(tmp_path, "example.com")
    store.initialize()

    one = _article("https://example.com/news/1", [ImageRef(img)])
    one.title = "Harbour budget approved"
    first = store.commit(one, acquirer.acquire(one, staging_key_for(one.url)))
    two = _article("https://example.com/news/2", [ImageRef(img)])
    two.title = "Harbour budget challenged"
    second = store.commit(two, acquirer.acquire(two, staging_key_for(two.url)))

    assert session.calls == [img]
    first_images = first.metadata["mediaFiles"]["images"]
    second_images = second.metadata["mediaFiles"]["images"]
    assert len(second_images) == 1
    assert second_images[0]["localPath"] == first_images[0]["localPath"]
    assert second_images[0]["localPath"].startswith(f"{first.folder_path}/media/")
    assert (domain_dir / second_images[0]["localPath"]).read_bytes() == b"SHARED"
    assert not (domain_dir / ".staging").exists()


def test_failures_are_skipped(tmp_path):
    ok = "https://cdn.example.com/ok.png"
    missing = "https://cdn.example.com/missing.png"
    unreachable = "https://cdn.example.com/down.png"
    acquirer, _session = _acquirer(
        tmp_path,
        {
            ok: DummyResp(b"PNG", headers={"Content-Type": "image/png"}),
            missing: DummyResp(status_code=404),
        },
    )
    article = _article(
        "https://example.com/news/1",
        images=[ImageRef(missing), ImageRef(unreachable), ImageRef(ok)],
    )
    manifest = acquirer.acquire(article, "k")
    assert [a.source_url for a in manifest.images] == [ok]


def test_size_ceiling(tmp_path):
    declared = "https://cdn.example.com/declared.mp4"
    streamed = "https://cdn.example.com/streamed.mp4"
    acquirer, _session = _acquirer(
        tmp_path,
        {
            declared: DummyResp(b"x", headers={"Content-Length": "1000"}),
            streamed: DummyResp(b"y" * 40, headers={"Content-Type": "video/mp4"}),
        },
        config=MediaConfig(max_media_bytes=16),
    )
    article = _article(
        "https://example.com/news/1", videos=[VideoRef(declared), VideoRef(streamed)]
    )
    manifest = acquirer.acquire(article, "k")
    assert manifest.videos == []
    staged = tmp_path / ".staging" / "k" / "videos"
    assert not staged.exists() or list(staged.iterdir()) == []


def test_screenshot_staged(tmp_path):
    acquirer, _session = _acquirer(tmp_path, {})
    article = _article("https://example.com/news/1")
    article.screenshot = b"\x89PNG"
    manifest = acquirer.acquire(article, "k")
    assert manifest.screenshot is not None
    assert manifest.screenshot.local_path == ".staging/k/screenshot.png"
    assert manifest.to_dict()["screenshot"] == ".staging/k/screenshot.png"
