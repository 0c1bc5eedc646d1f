"""Application core: configuration, database, Redis and ORM models."""
