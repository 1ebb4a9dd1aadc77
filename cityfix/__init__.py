"""CityFix municipal issue reporting service.

A FastAPI application where citizens report problems and each report is
driven to resolution by a timed workflow:
- RESTful create/list/read of issues
- Background resolution workflow (asyncio tasks or Celery)
- LLM-generated summaries and solutions via a completion endpoint
- SQLAlchemy ORM with async support
"""
