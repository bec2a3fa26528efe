from datetime import timedelta
from types import SimpleNamespace

import pytest

from src.publishing.draft_publisher import DraftPublisher, PublishingError, plan_slots, select_cover
from src.utils.datetime_utils import cuba_datetime, cuba_hour, ensure_utc

from conftest import FIXED_NOW, make_draft_payload

TENANT = "levantatecuba"


@pytest.fixture()
def publisher(db_manager):
    return DraftPublisher(db_manager)


@pytest.fixture()
def approved_draft(db_manager, draft):
    return db_manager.update_draft(draft.id, review_status="approved")


def test_slots_follow_interval_inside_window() -> None:
    slots = plan_slots(3, FIXED_NOW, 30, 0, 24)
    assert slots == [FIXED_NOW + timedelta(minutes=m) for m in (30, 60, 90)]


def test_first_slot_waits_for_window_start() -> None:
    early = cuba_datetime(FIXED_NOW, 5)
    assert plan_slots(1, early, 15, 7, 23) == [cuba_datetime(FIXED_NOW, 7)]


def test_first_slot_after_window_moves_to_next_day() -> None:
    late = cuba_datetime(FIXED_NOW, 23, 30)
    assert plan_slots(1, late, 15, 7, 23) == [cuba_datetime(FIXED_NOW + timedelta(days=1), 7)]


def test_slots_wrap_to_next_morning() -> None:
    evening = cuba_datetime(FIXED_NOW, 22)

    slots = plan_slots(3, evening, 30, 7, 23)

    next_morning = cuba_datetime(FIXED_NOW + timedelta(days=1), 7)
    assert slots == [cuba_datetime(FIXED_NOW, 22, 30), next_morning, next_morning + timedelta(minutes=30)]
    assert all(7 <= cuba_hour(slot) < 23 for slot in slots)


def _cover_draft(url=None, kind=None, status="ready", source=None):
    return SimpleNamespace(
        cover_image_url=url, image_kind=kind, image_status=status, ai_metadata={"sourceImageUrl": source}
    )


@pytest.mark.parametrize(
    "draft, expected",
    [
        (_cover_draft("https://x/ai.png", "ai", source="https://src/foto.jpg"), "https://x/ai.png"),
        (_cover_draft("https://x/manual.png", None, source="https://src/foto.jpg"), "https://src/foto.jpg"),
        (_cover_draft("https://x/proc.png", "processed", source="https://src/foto.jpg"), "https://x/proc.png"),
        (_cover_draft("https://x/manual.png", None), "https://x/manual.png"),
        (_cover_draft("https://x/y.png", "ai", status="error"), "https://x/y.png"),
        (_cover_draft(None, None, status="error", source="https://src/foto.jpg"), "https://src/foto.jpg"),
        (_cover_draft(None, None, status="none"), ""),
    ],
)
def test_select_cover_prefers_ai_then_processed_then_any(draft, expected) -> None:
    assert select_cover(draft) == expected


def test_publish_requires_approval(publisher, draft) -> None:
    with pytest.raises(PublishingError) as excinfo:
        publisher.publish_approved_draft(draft.id)
    assert excinfo.value.code == "NOT_APPROVED"

    with pytest.raises(PublishingError) as excinfo:
        publisher.publish_approved_draft(9999)
    assert excinfo.value.http_status == 404


def test_publish_rejects_short_titles(db_manager, publisher, approved_draft) -> None:
    db_manager.update_draft(approved_draft.id, titulo="Corto")
    with pytest.raises(PublishingError) as excinfo:
        publisher.publish_approved_draft(approved_draft.id)
    assert excinfo.value.code == "INVALID_TITLE"


def test_publish_creates_news_post_once(db_manager, publisher, approved_draft) -> None:
    result = publisher.publish_approved_draft(
        approved_draft.id, category_override="Economía", author_name="Mesa editorial", now=FIXED_NOW
    )

    news = result.news
    assert not result.already_published
    assert news.titulo == approved_draft.titulo
    assert news.categoria == "Economía"
    assert news.autor == "Mesa editorial"
    assert news.imagen == "https://cdn.example.com/cover.png"
    assert news.status == "published"
    assert news.ai_metadata["generatedFrom"] == approved_draft.id
    assert ensure_utc(news.published_at) == FIXED_NOW
    stored = db_manager.get_draft(approved_draft.id)
    assert stored.published_as == news.id
    assert stored.publish_status == "publicado"

    again = publisher.publish_approved_draft(approved_draft.id)
    assert again.already_published
    assert again.news.id == news.id


def test_publish_with_future_date_is_released_by_publish_job(db_manager, publisher, approved_draft) -> None:
    publish_at = FIXED_NOW + timedelta(hours=1)
    result = publisher.publish_approved_draft(
        approved_draft.id, schedule_at=publish_at, tags_override=["cuba"], now=FIXED_NOW
    )
    assert result.news.status == "scheduled"
    assert result.news.etiquetas == ["cuba"]
    assert db_manager.find_facebook_candidate(TENANT) is None

    early = publisher.publish_scheduled_drafts(now=FIXED_NOW + timedelta(minutes=30))
    assert early["released"] == 0
    assert db_manager.get_news_post(result.news.id).status == "scheduled"

    later = FIXED_NOW + timedelta(hours=3)
    summary = publisher.publish_scheduled_drafts(now=later)

    assert summary["released"] == 1
    news = db_manager.get_news_post(result.news.id)
    assert news.status == "published"
    assert ensure_utc(news.published_at) == later
    assert db_manager.find_facebook_candidate(TENANT).id == news.id


def test_schedule_draft_validates_date_and_state(publisher, approved_draft) -> None:
    with pytest.raises(PublishingError) as excinfo:
        publisher.schedule_draft(approved_draft.id, FIXED_NOW - timedelta(minutes=1), now=FIXED_NOW)
    assert excinfo.value.code == "INVALID_DATE"

    scheduled = publisher.schedule_draft(approved_draft.id, FIXED_NOW + timedelta(hours=2), now=FIXED_NOW)
    assert scheduled.publish_status == "programado"
    assert ensure_utc(scheduled.scheduled_at) == FIXED_NOW + timedelta(hours=2)

    publisher.publish_approved_draft(approved_draft.id, now=FIXED_NOW)
    with pytest.raises(PublishingError) as excinfo:
        publisher.schedule_draft(approved_draft.id, FIXED_NOW + timedelta(hours=2), now=FIXED_NOW)
    assert excinfo.value.code == "ALREADY_PUBLISHED"


def test_auto_schedule_requires_enabled_config(publisher, draft) -> None:
    with pytest.raises(PublishingError) as excinfo:
        publisher.auto_schedule_drafts(TENANT, now=FIXED_NOW)
    assert excinfo.value.code == "AUTO_SCHEDULE_DISABLED"


def test_auto_schedule_spreads_pending_drafts(db_manager, publisher, draft) -> None:
    second = db_manager.save_draft(make_draft_payload(titulo="Segundo borrador pendiente"))
    db_manager.update_ai_config(
        {
            "auto_schedule_enabled": True,
            "auto_schedule_interval": 15,
            "auto_schedule_start_hour": 0,
            "auto_schedule_end_hour": 23,
        },
        TENANT,
    )
    now = cuba_datetime(FIXED_NOW, 12)

    scheduled = publisher.auto_schedule_drafts(TENANT, now=now)

    assert [item["id"] for item in scheduled] == [draft.id, second.id]
    assert [item["scheduled_at"] for item in scheduled] == [
        (now + timedelta(minutes=15)).isoformat(),
        (now + timedelta(minutes=30)).isoformat(),
    ]
    assert db_manager.get_draft(second.id).publish_status == "programado"
    assert publisher.auto_schedule_drafts(TENANT, now=now) == []


def test_publish_scheduled_drafts_only_publishes_due(db_manager, publisher, draft) -> None:
    future = db_manager.save_draft(make_draft_payload(titulo="Programado para mañana"))
    db_manager.update_draft(draft.id, publish_status="programado", scheduled_at=FIXED_NOW - timedelta(minutes=1))
    db_manager.update_draft(future.id, publish_status="programado", scheduled_at=FIXED_NOW + timedelta(days=1))

    summary = publisher.publish_scheduled_drafts(now=FIXED_NOW)

    assert summary == {"found": 1, "published": 1, "failed": 0, "released": 0, "skipped": 0}
    assert db_manager.get_draft(draft.id).publish_status == "publicado"
    assert db_manager.get_draft(future.id).published_as is None


def test_publish_scheduled_drafts_skips_overlapping_runs(publisher) -> None:
    publisher._publish_guard.acquire()
    try:
        assert publisher.publish_scheduled_drafts(now=FIXED_NOW)["skipped"] == 1
    finally:
        publisher._publish_guard.release()
