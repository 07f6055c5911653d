"""
Document Analyzer - Insights From The Reader's Own Documents
=============================================================

Turns the reader's external documents into generation context:

1. List and fetch recent documents through the "document_source"
   ResilienceWrapper
2. Analyze each document with the text-generation capability, falling
   back to keyword heuristics
3. Distill the insights into a ContentMix (categories, topics, titles)
4. Persist a bounded set of insight records with 7-day retention

Documents that cannot be fetched are skipped; listing failures propagate
so the caller can degrade to "no insights".
"""

import re
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger

from config.constants import DEFAULT_CATEGORIES
from core.enums import InsightType, Language, ReadingLevel
from core.models import ContentMix, DocumentInsight, DocumentMetadata, UserProfile, utc_now
from infrastructure.llm_client import parse_json_response

MAX_SAVED_INSIGHTS = 10
ANALYSIS_SAMPLE_CHARS = 500

# Category guess keywords (English and Hebrew)
CATEGORY_KEYWORDS = {
    "technology": ("technology", "programming", "software", "development", "טכנולוגיה", "תכנות", "פיתוח"),
    "business": ("business", "management", "marketing", "עסק", "ניהול", "שיווק"),
    "psychology": ("psychology", "behavior", "emotion", "פסיכולוגיה", "התנהגות", "רגש"),
}

DEFAULT_MIX_TOPICS = ("personal development", "productivity", "technology")

_HEBREW_CHARS = re.compile(r"[֐-׿]")
_LATIN_CHARS = re.compile(r"[a-zA-Z]")
_WORD = re.compile(r"[\w֐-׿]{5,}")


# =============================================================================
# HEURISTICS
# =============================================================================


def detect_language(text: str) -> Language:
    """Hebrew/Latin character ratio; both above 0.3 means mixed."""
    if not text:
        return Language.ENGLISH
    hebrew = len(_HEBREW_CHARS.findall(text)) / len(text)
    latin = len(_LATIN_CHARS.findall(text)) / len(text)
    if hebrew > 0.3 and latin > 0.3:
        return Language.MIXED
    return Language.HEBREW if hebrew > latin else Language.ENGLISH


def guess_categories(name: str, content: str) -> List[str]:
    text = f"{name} {content[:300]}".lower()
    categories = [c for c, words in CATEGORY_KEYWORDS.items() if any(w in text for w in words)]
    return categories or ["general"]


def estimate_difficulty(content: str) -> ReadingLevel:
    if len(content) > 2000:
        return ReadingLevel.ADVANCED
    if len(content) > 500:
        return ReadingLevel.INTERMEDIATE
    return ReadingLevel.BEGINNER


def extract_basic_topics(name: str, content: str, limit: int = 5) -> List[str]:
    """Most frequent longer words from the name and opening text."""
    words = _WORD.findall(f"{name} {content[:ANALYSIS_SAMPLE_CHARS]}".lower())
    return [word for word, _ in Counter(words).most_common(limit)]


def build_basic_insight(document: DocumentMetadata, content: str) -> DocumentInsight:
    topics = extract_basic_topics(document.name, content)
    return DocumentInsight(
        document_id=document.id,
        title=document.name,
        main_topics=topics,
        key_insights=topics[:3],
        difficulty=estimate_difficulty(content),
        category=guess_categories(document.name, content)[0],
        language=detect_language(content),
        suggested_article_topics=[],
    )


def build_basic_content_mix(insights: Sequence[DocumentInsight]) -> ContentMix:
    """Top 3 categories and top 5 topics by frequency."""
    categories = Counter(i.category for i in insights)
    topics = Counter(t for i in insights for t in i.main_topics)
    return ContentMix(
        recommended_categories=[c for c, _ in categories.most_common(3)] or list(DEFAULT_CATEGORIES),
        suggested_topics=[t for t, _ in topics.most_common(5)] or list(DEFAULT_MIX_TOPICS),
    )


def default_content_mix() -> ContentMix:
    return ContentMix(
        recommended_categories=list(DEFAULT_CATEGORIES),
        suggested_topics=list(DEFAULT_MIX_TOPICS),
    )


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v]


# =============================================================================
# ANALYZER
# =============================================================================


class DocumentAnalyzer:
    """
    External-document insight pipeline.

    Usage:
        analyzer = DocumentAnalyzer(source, resilience, insights, llm_client)
        insights = await analyzer.analyze_documents()
        mix = await analyzer.generate_content_mix(insights, profile)
    """

    def __init__(
        self,
        document_source: Any,
        resilience: Any,
        insight_repository: Optional[Any] = None,
        llm_client: Optional[Any] = None,
        max_documents: int = 10,
        max_content_chars: int = 2000,
        retention_days: int = 7,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.source = document_source
        self.resilience = resilience
        self.insights = insight_repository
        self.llm_client = llm_client
        self.max_documents = max_documents
        self.max_content_chars = max_content_chars
        self.retention_days = retention_days
        self._clock = clock

    async def analyze_documents(self, max_documents: Optional[int] = None) -> List[DocumentInsight]:
        """
        Analyze the most recent documents.

        Args:
            max_documents: Upper bound on analyzed documents

        Returns:
            One insight per readable document

        Raises:
            DocumentSourceError: Listing failed after retries
        """
        limit = max_documents or self.max_documents
        documents: List[DocumentMetadata] = await self.resilience.execute(
            lambda: self.source.list_documents(limit=limit), "list_documents"
        )
        if not documents:
            logger.info("No external documents found")
            return []

        logger.info(f"Analyzing {len(documents[:limit])} external documents")
        results: List[DocumentInsight] = []
        for document in documents[:limit]:
            try:
                content = await self.resilience.execute(
                    lambda doc=document: self.source.fetch_content(doc), "fetch_content"
                )
            except Exception as e:
                logger.warning(f"Skipping unreadable document {document.name}: {e}")
                continue
            results.append(await self.analyze_document(document, content[: self.max_content_chars]))

        logger.success(f"Analyzed {len(results)} documents")
        return results

    async def analyze_document(self, document: DocumentMetadata, content: str) -> DocumentInsight:
        """AI analysis of one document; heuristic insight on any failure."""
        basic = build_basic_insight(document, content)
        if self.llm_client is None or not self.llm_client.is_enabled:
            return basic

        prompt = f"""Analyze the following document and provide insights.

Title: {document.name}
Type: {document.mime_type}
Content (first {ANALYSIS_SAMPLE_CHARS} characters):
{content[:ANALYSIS_SAMPLE_CHARS]}

Return JSON in this format:
{{
  "category": "technology/business/psychology/...",
  "main_topics": ["specific topic 1", "specific topic 2", "specific topic 3"],
  "key_insights": ["key point 1", "key point 2", "key point 3"],
  "difficulty": "beginner/intermediate/advanced",
  "language": "hebrew/english/mixed",
  "suggested_article_topics": ["article idea 1", "article idea 2"],
  "relevance_score": 0-100
}}"""

        try:
            text = await self.llm_client.complete_text(
                prompt, system="You are an expert document analyst. Always return valid JSON only."
            )
        except Exception as e:
            logger.warning(f"AI analysis failed for {document.name}: {e}")
            return basic

        parsed = parse_json_response(text, None)
        if not isinstance(parsed, dict):
            return basic

        try:
            return DocumentInsight(
                document_id=document.id,
                title=document.name,
                main_topics=_string_list(parsed.get("main_topics")) or basic.main_topics,
                key_insights=_string_list(parsed.get("key_insights")),
                difficulty=ReadingLevel(parsed.get("difficulty", basic.difficulty.value)),
                category=str(parsed.get("category") or basic.category),
                language=Language(parsed.get("language", basic.language.value)),
                suggested_article_topics=_string_list(parsed.get("suggested_article_topics")),
                relevance_score=float(parsed.get("relevance_score", 50)),
            )
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding malformed analysis for {document.name}: {e}")
            return basic

    async def generate_content_mix(
        self, insights: Sequence[DocumentInsight], profile: Optional[UserProfile] = None
    ) -> ContentMix:
        """
        Content suggestions from document insights and the reader profile.

        Returns:
            AI-built mix, the frequency-based mix when the model is
            unavailable or fails, or the default mix without insights
        """
        if not insights:
            return default_content_mix()

        basic = build_basic_content_mix(insights)
        if self.llm_client is None or not self.llm_client.is_enabled:
            return basic

        categories = Counter(i.category for i in insights).most_common(5)
        topics = Counter(t for i in insights for t in i.main_topics).most_common(10)
        profile_block = ""
        if profile is not None:
            profile_block = f"""
Reader:
- Reading level: {profile.reading_level.value}
- Preferred style: {profile.content_style.value}
- Preferred categories: {", ".join(profile.category_names) or "none"}
"""

        prompt = f"""Build a personalized content mix from the reader's documents.

Documents analyzed: {len(insights)}
Main categories: {", ".join(f"{c} ({n})" for c, n in categories)}
Recurring topics: {", ".join(t for t, _ in topics)}
{profile_block}
Return JSON in this format:
{{
  "recommended_categories": ["category 1", "category 2", "category 3"],
  "suggested_topics": ["topic 1", "topic 2", "topic 3", "topic 4", "topic 5"],
  "personalized_titles": ["title 1", "title 2", "title 3"],
  "learning_path": ["step 1", "step 2", "step 3"]
}}"""

        try:
            text = await self.llm_client.complete_text(
                prompt, system="You are a content strategist. Return valid JSON only."
            )
        except Exception as e:
            logger.warning(f"Content mix generation failed, using basic mix: {e}")
            return basic

        parsed = parse_json_response(text, None)
        if not isinstance(parsed, dict):
            return basic

        mix = ContentMix(
            recommended_categories=_string_list(parsed.get("recommended_categories")),
            suggested_topics=_string_list(parsed.get("suggested_topics")),
            personalized_titles=_string_list(parsed.get("personalized_titles")),
            learning_path=_string_list(parsed.get("learning_path")),
        )
        return basic if mix.is_empty else mix

    async def save_document_insights(self, insights: Sequence[DocumentInsight]) -> int:
        """
        Replace stale document insight records.

        Records older than the retention window are purged, then at most
        10 new records are written. Failures are logged, never raised.

        Returns:
            Number of records written
        """
        if self.insights is None:
            return 0

        cutoff = self._clock() - timedelta(days=self.retention_days)
        saved = 0
        try:
            await self.insights.delete_older_than([InsightType.DOCUMENT_ANALYSIS], cutoff)
            for insight in list(insights)[:MAX_SAVED_INSIGHTS]:
                await self.insights.create(
                    InsightType.DOCUMENT_ANALYSIS,
                    title=f"Document: {insight.title}",
                    content=", ".join(insight.key_insights) or insight.title,
                    metadata={
                        "document_id": insight.document_id,
                        "category": insight.category,
                        "main_topics": insight.main_topics,
                        "difficulty": insight.difficulty.value,
                        "language": insight.language.value,
                    },
                )
                saved += 1
        except Exception as e:
            logger.error(f"Failed to save document insights: {e}")

        if saved:
            logger.info(f"Saved {saved} document insights")
        return saved

    @staticmethod
    def summarize(insights: Sequence[DocumentInsight], mix: Optional[ContentMix] = None) -> Dict[str, Any]:
        """Prompt-context summary: main topics, interests, expertise."""
        if not insights:
            return {}

        levels = Counter(i.difficulty for i in insights)
        topics = Counter(t for i in insights for t in i.main_topics)
        interests = list(mix.suggested_topics[:5]) if mix else []
        return {
            "main_topics": [t for t, _ in topics.most_common(5)],
            "interests": interests,
            "expertise": levels.most_common(1)[0][0].value,
            "content_types": sorted({i.category for i in insights}),
        }


__all__ = [
    "DocumentAnalyzer",
    "build_basic_insight",
    "build_basic_content_mix",
    "detect_language",
    "guess_categories",
]
