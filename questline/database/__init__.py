"""Persistence schema for Questline (SQLAlchemy ORM models)."""
