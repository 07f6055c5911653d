"""
Database Schema: SQLAlchemy Core Table Definitions

Tables read and written by the personalization pipeline. The CRUD surface
for articles, books and summaries lives in the main application; only the
columns the pipeline consumes are declared here.
"""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.orm import declarative_base

# Metadata instance for all tables
metadata = MetaData()

# Declarative base for Alembic autogenerate
Base = declarative_base(metadata=metadata)

# Articles Table (curated and generated)
articles_table = Table(
    "articles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("title", String(500), nullable=False),
    Column("content", Text, nullable=False, default=""),
    Column("excerpt", Text),
    Column("category", String(100), nullable=False, index=True),
    Column("tags", JSON, default=list),
    Column("read_time", Integer, default=5),
    Column("difficulty", String(20)),
    Column("personality_match", Float),
    Column("source", String(50), default="curated"),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), index=True),
    Index("idx_articles_category_created", "category", "created_at"),
)

# Saved Articles Table
saved_articles_table = Table(
    "saved_articles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("article_id", String(36), ForeignKey("articles.id", ondelete="CASCADE"), nullable=False),
    Column("saved_at", DateTime(timezone=True), server_default=func.now(), index=True),
)

# Books Table (reading collections)
books_table = Table(
    "books",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("title", String(500), nullable=False),
    Column("author", String(255)),
    Column("category", String(100)),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), index=True),
)

# User Activity Table
user_activities_table = Table(
    "user_activities",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("action", String(50), nullable=False, index=True),
    Column("target_type", String(50)),
    Column("target_id", String(36)),
    Column("metadata", JSON),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), index=True),
    Index("idx_activities_action_created", "action", "created_at"),
)

# AI Questions Table
ai_questions_table = Table(
    "ai_questions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("article_id", String(36), ForeignKey("articles.id", ondelete="SET NULL")),
    Column("question", Text, nullable=False),
    Column("answer", Text),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), index=True),
)

# Insights Table
insights_table = Table(
    "insights",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("type", String(50), nullable=False, index=True),
    Column("title", String(500), nullable=False),
    Column("content", Text),
    Column("metadata", JSON),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), index=True),
    Index("idx_insights_type_created", "type", "created_at"),
)

__all__ = [
    "metadata",
    "Base",
    "articles_table",
    "saved_articles_table",
    "books_table",
    "user_activities_table",
    "ai_questions_table",
    "insights_table",
]
