"""Publicación de borradores como noticias y difusión en Facebook."""

from .draft_publisher import (
    DraftPublisher,
    PublishingError,
    PublishResult,
    get_draft_publisher,
    plan_slots,
    select_cover,
)
from .facebook_auto_publisher import (
    CANDIDATE_TIERS,
    FacebookAutoPublisher,
    get_facebook_auto_publisher,
    get_facebook_schedule_summary,
    is_news_a_facebook_candidate,
    is_within_time_window,
    run_facebook_auto_publisher,
    should_publish_now,
)
from .facebook_publisher import (
    FacebookPostResult,
    FacebookPublishError,
    FacebookPublisher,
    build_facebook_message,
    build_hashtags,
)

__all__ = [
    "CANDIDATE_TIERS",
    "DraftPublisher",
    "FacebookAutoPublisher",
    "FacebookPostResult",
    "FacebookPublishError",
    "FacebookPublisher",
    "PublishResult",
    "PublishingError",
    "build_facebook_message",
    "build_hashtags",
    "get_draft_publisher",
    "get_facebook_auto_publisher",
    "get_facebook_schedule_summary",
    "is_news_a_facebook_candidate",
    "is_within_time_window",
    "plan_slots",
    "run_facebook_auto_publisher",
    "select_cover",
    "should_publish_now",
]
