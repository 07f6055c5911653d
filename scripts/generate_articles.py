"""
Personalized Generation Command-Line Entry Point
=================================================

Runs one pipeline operation against a freshly initialized container:
- a personalized generation batch (default)
- the daily batch, gated on recent activity
- a recommendation listing
- any scheduled job by name

Usage:
    python -m scripts.generate_articles --count 5
    python -m scripts.generate_articles --daily
    python -m scripts.generate_articles --recommend 10
    python -m scripts.generate_articles --job cleanup
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from loguru import logger

from container import Container, ContainerManager
from core.exceptions import CurationException
from orchestration.tasks import JOBS, run_job


async def generate(container: Container, count: int, daily: bool) -> int:
    generator = container.content_generator()
    if daily:
        articles = await generator.generate_daily_content(count)
    else:
        articles = await generator.generate_personalized_content(count)

    for article in articles:
        logger.info(
            f"{article.title} [{article.category}] - {article.read_time_minutes} min, "
            f"match {article.personality_match:.0f}%"
        )
    return 0


async def recommend(container: Container, limit: int) -> int:
    recommendations = await container.recommendation_engine().generate_personalized_recommendations(
        limit=limit
    )
    logger.info(f"Confidence {recommendations.confidence}% | {recommendations.reasoning}")
    for i, article in enumerate(recommendations.articles, start=1):
        logger.info(f"{i}. {article.title} ({article.category}) relevance={article.relevance_score:.1f}")
    if recommendations.suggested_topics:
        logger.info(f"Suggested topics: {', '.join(recommendations.suggested_topics)}")
    return 0


async def main_async(args: argparse.Namespace) -> int:
    async with ContainerManager(start_background=False) as container:
        if args.recommend is not None:
            return await recommend(container, args.recommend)
        count = args.count
        if count is None:
            settings = container.config().generation
            count = settings.daily_article_count if args.daily else settings.default_batch_size
        return await generate(container, count, args.daily)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Personalized article generation")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--daily", action="store_true", help="Generate only if there was activity in the last 24h")
    group.add_argument("--recommend", type=int, metavar="N", help="List N recommendations instead of generating")
    group.add_argument("--job", choices=sorted(JOBS), help="Run a scheduled job by name")
    parser.add_argument("--count", type=int, help="Number of articles to generate")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    if args.job:
        return 0 if run_job(args.job) else 1

    try:
        return asyncio.run(main_async(args))
    except CurationException as e:
        logger.error(f"Generation failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
