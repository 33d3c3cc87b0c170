"""Prompt loading and rendering helpers for enrichment requests."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from ..core.types import ArticleContent


_PROMPT_DIR = Path(__file__).resolve().parent.parent / "prompts"

SUMMARY_CHARS = 4000
POST_CHARS = 3000
KEYWORD_CHARS = 3000
SENTIMENT_CHARS = 3000
CATEGORY_CHARS = 2000

CATEGORIES = [
    "Technology",
    "Business",
    "Science",
    "Health",
    "Politics",
    "Sports",
    "Entertainment",
    "World News",
    "Opinion",
    "Other",
]


@dataclass(frozen=True)
class PlatformSpec:
    """Request shaping for one social network.

    Attributes:
        rules: Instructions describing the network's conventions and length
        max_tokens: Completion budget sent upstream
    """
    rules: str
    max_tokens: int


PLATFORMS: dict[str, PlatformSpec] = {
    "twitter": PlatformSpec(
        "Keep it under 280 characters, use hashtags, make it engaging and shareable",
        100,
    ),
    "linkedin": PlatformSpec(
        "Professional tone, can be longer, focus on insights and professional value",
        400,
    ),
    "reddit": PlatformSpec(
        "Conversational tone, provide context, encourage discussion",
        300,
    ),
}

TONES: dict[str, str] = {
    "professional": "Use formal language, focus on business value and insights",
    "casual": "Use friendly, approachable language, be conversational",
    "engaging": "Use compelling language, ask questions, encourage interaction",
}


@lru_cache(maxsize=None)
def _load_template(name: str) -> str:
    path = _PROMPT_DIR / f"{name}.md"
    return path.read_text(encoding="utf-8").strip()


def _render_template(name: str, **values: str) -> str:
    template = _load_template(name)
    return template.format(**values)


def system_prompt() -> str:
    return _load_template("system")


def build_summary_prompt(article: ArticleContent) -> str:
    return _render_template(
        "summarize",
        title=article.title,
        content=article.content[:SUMMARY_CHARS],
    )


def build_social_post_prompt(article: ArticleContent, platform: str, tone: str) -> str:
    target = PLATFORMS[platform]
    return _render_template(
        "social_post",
        platform=platform,
        title=article.title,
        content=article.content[:POST_CHARS],
        url_line=f"URL: {article.url}\n" if article.url else "",
        platform_rules=target.rules,
        tone_instructions=TONES[tone],
    )


def build_keywords_prompt(article: ArticleContent) -> str:
    return _render_template(
        "keywords",
        title=article.title,
        content=article.content[:KEYWORD_CHARS],
    )


def build_sentiment_prompt(article: ArticleContent) -> str:
    return _render_template(
        "sentiment",
        title=article.title,
        content=article.content[:SENTIMENT_CHARS],
    )


def build_category_prompt(article: ArticleContent) -> str:
    return _render_template(
        "categorize",
        categories=", ".join(CATEGORIES),
        title=article.title,
        content=article.content[:CATEGORY_CHARS],
    )


def build_search_prompt(query: str) -> str:
    return _render_template("search_suggestions", query=query)
