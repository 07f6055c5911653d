"""
Unit tests for the Profile Analyzer.

Tests the pure profiling functions and the PreferenceAnalyzer service
(memoization, prompt context, document and topic helpers).
"""

import pytest

from core.enums import ContentStyle, QuestionType, ReadingLevel, ReadingTime
from intelligence.preference_analyzer import (
    PROFILE_CACHE_KEY,
    PreferenceAnalyzer,
    build_profile,
    classify_content_style,
    classify_question_types,
    determine_reading_level,
    extract_topics,
    render_profile_context,
    score_categories,
)


def saved(category, title="Untitled", content=""):
    return {"category": category, "title": title, "content": content}


def question(text):
    return {"question": text}


@pytest.mark.unit
class TestCategoryScores:
    def test_empty_history(self):
        assert score_categories([]) == []

    def test_shares_are_ordered_and_bounded(self):
        rows = [saved("tech")] * 3 + [saved("health")] * 2 + [saved(c) for c in "abcdef"]

        scores = score_categories(rows)

        assert len(scores) == 5
        assert scores[0].category == "tech"
        assert scores[0].score == pytest.approx(3 / 11)
        assert all(a.score >= b.score for a, b in zip(scores, scores[1:]))
        assert sum(s.score for s in scores) <= 1.0

    def test_ties_keep_first_seen_order(self):
        scores = score_categories([saved("b"), saved("a")])
        assert [s.category for s in scores] == ["b", "a"]


@pytest.mark.unit
class TestReadingLevel:
    def test_empty_history_is_beginner(self):
        assert determine_reading_level([], [], []) == ReadingLevel.BEGINNER

    def test_intermediate_from_collections_and_breadth(self):
        collections = [{}] * 5
        articles = [saved("a"), saved("b"), saved("c")]

        # 1 (collections) + 0 (questions) + 1 (breadth) = 2
        assert determine_reading_level(articles, collections, []) == ReadingLevel.INTERMEDIATE

    def test_advanced_with_complex_questions(self):
        collections = [{}] * 10
        questions = [question("Compare stoicism and existentialism")]

        # 2 + 2 + 0 = 4
        assert determine_reading_level([], collections, questions) == ReadingLevel.ADVANCED

    def test_long_questions_count_as_complex(self):
        long_question = question("x" * 51)
        assert determine_reading_level([], [{}] * 5, [long_question]) == ReadingLevel.ADVANCED


@pytest.mark.unit
class TestContentStyle:
    def test_no_keywords_is_mixed(self):
        assert classify_content_style([saved("a", "Notes")]) == ContentStyle.MIXED

    def test_practical(self):
        rows = [saved("a", "A practical guide"), saved("a", "Tips for sleep")]
        assert classify_content_style(rows) == ContentStyle.PRACTICAL

    def test_theoretical(self):
        rows = [saved("a", "The theory of mind"), saved("a", "Research on habits")]
        assert classify_content_style(rows) == ContentStyle.THEORETICAL

    def test_hebrew_keywords(self):
        rows = [saved("a", "מדריך לכתיבה"), saved("a", "איך ללמוד")]
        assert classify_content_style(rows) == ContentStyle.PRACTICAL


@pytest.mark.unit
class TestQuestionsAndTopics:
    def test_question_types_first_match_and_general(self):
        types = classify_question_types(
            [question("How do I start?"), question("Why does it work?"), question("Tell me more")]
        )
        assert types == [QuestionType.INSTRUCTIONS, QuestionType.EXPLANATIONS, QuestionType.GENERAL]

    def test_question_types_deduplicated(self):
        types = classify_question_types([question("how"), question("how again")])
        assert types == [QuestionType.INSTRUCTIONS]

    def test_topics_from_titles_and_questions(self):
        topics = extract_topics([saved("a", "Deep learning basics")], [question("explain transformers and attention")])
        assert topics == ["Deep", "learning", "basics", "explain", "transformers", "attention"]

    def test_topics_capped(self):
        title = " ".join(f"word{i}" for i in range(30))
        assert len(extract_topics([saved("a", title)], [])) == 15


@pytest.mark.unit
class TestBuildProfile:
    def test_empty_history_gives_default_profile(self):
        profile = build_profile([], [], [], [])

        assert profile.top_categories == []
        assert profile.reading_level == ReadingLevel.BEGINNER
        assert profile.content_style == ContentStyle.MIXED
        assert profile.interaction_patterns.reading_time == ReadingTime.QUICK
        assert profile.interaction_patterns.save_frequency == 0.0

    def test_save_frequency_clamped(self):
        profile = build_profile([saved("a")] * 5, [{"action": "article_read"}], [], [])
        assert profile.interaction_patterns.save_frequency == 1.0

    def test_reading_time_from_read_events(self):
        activity = [{"action": "article_read"}] * 24
        profile = build_profile([], activity, [], [])
        assert profile.interaction_patterns.reading_time == ReadingTime.DETAILED


@pytest.mark.unit
class TestProfileContext:
    def test_context_mentions_interests(self, profile_builder):
        profile = profile_builder([("technology", 0.6)], topics=["python"])

        context = render_profile_context(profile)

        assert "technology (interest: 60%)" in context
        assert "python" in context
        assert "Personal documents" not in context

    def test_context_includes_documents(self, profile_builder):
        context = render_profile_context(
            profile_builder(), {"main_topics": ["gardening"], "expertise": "advanced", "interests": ["soil"]}
        )
        assert "gardening" in context
        assert "advanced" in context


@pytest.mark.unit
class TestPreferenceAnalyzer:
    @pytest.fixture
    def analyzer(self, article_repository, activity_repository, cache_manager):
        return PreferenceAnalyzer(article_repository, activity_repository, cache_manager)

    @pytest.mark.asyncio
    async def test_profile_memoized_in_profile_pool(self, analyzer, article_repository, cache_manager):
        article_repository.get_saved_articles.return_value = [saved("health")]

        first = await analyzer.analyze_user_profile()
        second = await analyzer.analyze_user_profile()

        assert first is second
        assert article_repository.get_saved_articles.await_count == 1
        assert cache_manager.get_statistics()["pools"]["profile"]["size"] == 1
        assert await cache_manager.get(PROFILE_CACHE_KEY) is first

    @pytest.mark.asyncio
    async def test_force_refresh_rebuilds(self, analyzer, article_repository):
        await analyzer.analyze_user_profile()
        await analyzer.analyze_user_profile(force_refresh=True)

        assert article_repository.get_saved_articles.await_count == 2

    @pytest.mark.asyncio
    async def test_profile_expires_after_fifteen_minutes(self, analyzer, article_repository, clock):
        await analyzer.analyze_user_profile()
        clock.advance(901)
        await analyzer.analyze_user_profile()

        assert article_repository.get_saved_articles.await_count == 2

    @pytest.mark.asyncio
    async def test_document_content_without_model(self, analyzer):
        result = await analyzer.analyze_document_content(
            [{"name": "garden", "content": "Composting improves vegetable yields", "type": "text/plain"}]
        )

        assert result["expertise"] == "intermediate"
        assert "Composting" in result["main_topics"]
        assert result["content_types"] == ["text/plain"]

    @pytest.mark.asyncio
    async def test_document_content_with_model(
        self, article_repository, activity_repository, cache_manager, scripted_llm
    ):
        llm = scripted_llm(['{"main_topics": ["ai"], "expertise": "advanced"}'])
        analyzer = PreferenceAnalyzer(article_repository, activity_repository, cache_manager, llm)

        result = await analyzer.analyze_document_content([{"name": "n", "content": "c", "type": "t"}])

        assert result["main_topics"] == ["ai"]
        assert result["expertise"] == "advanced"
        assert result["interests"] == []

    @pytest.mark.asyncio
    async def test_topic_recommendations_fall_back_on_error(
        self, article_repository, activity_repository, cache_manager, scripted_llm, profile_builder
    ):
        llm = scripted_llm([RuntimeError("provider down")])
        analyzer = PreferenceAnalyzer(article_repository, activity_repository, cache_manager, llm)

        topics = await analyzer.generate_content_recommendations(profile_builder([("health", 1.0)]))

        assert topics == ["advanced health"]

    @pytest.mark.asyncio
    async def test_topic_recommendations_from_model(
        self, article_repository, activity_repository, cache_manager, scripted_llm, profile_builder
    ):
        llm = scripted_llm(['["sleep hygiene", "circadian rhythm"]'])
        analyzer = PreferenceAnalyzer(article_repository, activity_repository, cache_manager, llm)

        topics = await analyzer.generate_content_recommendations(profile_builder([("health", 1.0)]), count=1)

        assert topics == ["sleep hygiene"]
