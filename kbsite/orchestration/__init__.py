"""Orchestration module exposing the read-only knowledge base facade."""

from kbsite.orchestration.knowledge_base import (
    ArticleView,
    CitationView,
    KnowledgeBase,
    SearchHit,
    SectionView,
)

__all__ = [
    "ArticleView",
    "CitationView",
    "KnowledgeBase",
    "SearchHit",
    "SectionView",
]
