"""Persistence: ORM models, database session, repositories, schemas, identity tokens."""
