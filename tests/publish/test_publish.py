"""Tests for PublishCoordinator and the JSON publish repository."""

import pytest
from clipforge.config import PublishConfig
from clipforge.errors import StoreUnavailableError
from clipforge.publish import (
    PUBLISHED_FILENAME,
    JsonPublishRepository,
    PublishCoordinator,
    build_tags,
    normalize_tag,
    public_url,
)
from clipforge.review import EditableMetadata, PendingReviewItem, ReviewPriority


def _make_item(**kwargs: object) -> PendingReviewItem:
    kwargs.setdefault("duration_ms", 45_900)
    return PendingReviewItem(
        job_id="job-1",
        metadata=EditableMetadata(title="Light to Sugar", tags=["Biology", " #Plants ", "biology"]),
        video_key="edited-videos/v/job-1.mp4",
        thumbnail_key="thumbnails/v/job-1.jpg",
        quality_score=85,
        review_priority=ReviewPriority.NORMAL,
        language="en",
        **kwargs,  # type: ignore[arg-type]
    )


def _config() -> PublishConfig:
    return PublishConfig(bucket="clips", region="us-east-1", system_user_id="system-user")


class TestTags:
    def test_normalize(self):
        assert normalize_tag("  #Cell   Biology ") == "cell biology"

    def test_normalize_truncates(self):
        assert len(normalize_tag("x" * 80)) == 50

    def test_build_tags_dedupes(self):
        tags = build_tags("c1", ["Biology", "#biology", "", "Plants"])
        assert [(t.tag, t.normalized) for t in tags] == [("Biology", "biology"), ("Plants", "plants")]


class TestPublishCoordinator:
    def test_creates_all_records(self, tmp_path):
        repo = JsonPublishRepository(tmp_path)
        content_id = PublishCoordinator(repo, _config()).publish(_make_item())

        content = repo.get(content_id)
        assert content.creator_id == "system-user"
        assert content.url == public_url("clips", "us-east-1", "edited-videos/v/job-1.mp4")
        assert content.url == "https://clips.s3.us-east-1.amazonaws.com/edited-videos/v/job-1.mp4"
        assert content.thumbnail_url.endswith("/thumbnails/v/job-1.jpg")
        assert content.duration_seconds == 45
        assert (content.width, content.height) == (1080, 1920)

        meta = repo.metadata_for(content_id)
        assert meta.title == "Light to Sugar"
        assert meta.tags == ["biology", "plants"]
        assert meta.language == "en"
        assert repo.interaction_for(content_id).share_count == 0
        assert len(repo.tags_for(content_id)) == 2

    def test_idempotent_for_same_item(self, tmp_path):
        repo = JsonPublishRepository(tmp_path)
        coordinator = PublishCoordinator(repo, _config())
        item = _make_item()

        first = coordinator.publish(item)
        second = coordinator.publish(item)

        assert first == second
        assert len(repo._data.contents) == 1
        assert len(repo._data.tags) == 2

    def test_already_published_item_skips_repository(self, tmp_path):
        repo = JsonPublishRepository(tmp_path)
        item = _make_item(published_content_id="existing")
        assert PublishCoordinator(repo, _config()).publish(item) == "existing"
        assert not (tmp_path / PUBLISHED_FILENAME).exists()

    def test_missing_thumbnail_falls_back_to_video(self, tmp_path):
        repo = JsonPublishRepository(tmp_path)
        item = _make_item().model_copy(update={"thumbnail_key": None, "duration_ms": None})
        content = repo.get(PublishCoordinator(repo, _config()).publish(item))
        assert content.thumbnail_url == content.url
        assert content.duration_seconds is None

    def test_records_persist(self, tmp_path):
        repo = JsonPublishRepository(tmp_path)
        item = _make_item()
        content_id = PublishCoordinator(repo, _config()).publish(item)

        reloaded = JsonPublishRepository(tmp_path)
        assert reloaded.find_by_pending_item(item.id).id == content_id


class TestTransaction:
    def test_exception_discards_staged_records(self, tmp_path):
        repo = JsonPublishRepository(tmp_path)
        item = _make_item()
        with pytest.raises(RuntimeError):
            with repo.transaction() as unit:
                unit.create_tags(build_tags("c1", ["a"]))
                raise RuntimeError("boom")
        assert repo._data.tags == []
        assert repo.find_by_pending_item(item.id) is None

    def test_write_failure_leaves_memory_unchanged(self, tmp_path, monkeypatch):
        repo = JsonPublishRepository(tmp_path)

        def _fail(path, text):
            raise OSError("read-only")

        monkeypatch.setattr("clipforge.publish.repository._atomic_write", _fail)
        with pytest.raises(StoreUnavailableError):
            PublishCoordinator(repo, _config()).publish(_make_item())
        assert repo._data.contents == []

    def test_corrupt_file(self, tmp_path):
        (tmp_path / PUBLISHED_FILENAME).write_text("{", encoding="utf-8")
        with pytest.raises(StoreUnavailableError):
            JsonPublishRepository(tmp_path)
