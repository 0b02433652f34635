"""
Math tutor backend package.

This package contains all application source code organized by responsibility:
- api/       : FastAPI routes and HTTP handling (one router per handler group)
- core/      : Configuration, logging, errors, auth and cross-cutting utilities
- services/  : Business logic for referrals, rewards, subscriptions, chat, analytics
- learning/  : Pure adaptation and scoring heuristics (no I/O)
- llm/       : LLM integration and the tutor prompt
- database/  : SQLAlchemy models and session management
- models/    : Pydantic models for request/response schemas
"""
