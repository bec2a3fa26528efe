"""Shared contracts for validated pipeline payloads."""

from .collector import ScannedArticle, ScannedArticlePayload
from .drafts import DraftPayloadModel
from .topics import TopicCandidateModel, TopicSource, TopicSourceModel

__all__ = [
    "DraftPayloadModel",
    "ScannedArticle",
    "ScannedArticlePayload",
    "TopicCandidateModel",
    "TopicSource",
    "TopicSourceModel",
]
