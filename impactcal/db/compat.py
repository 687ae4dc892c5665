"""
Database compatibility layer.

Column types that behave the same on SQLite (tests, local dev) and
PostgreSQL (production):
- GUID: native UUID on PostgreSQL, CHAR(36) elsewhere
- JSONType: JSONB on PostgreSQL, JSON elsewhere (run failure context)
"""

import uuid

from sqlalchemy import JSON, String, TypeDecorator
from sqlalchemy.dialects import postgresql


class GUID(TypeDecorator):
    """UUID column that round-trips as ``uuid.UUID`` on every dialect."""

    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.UUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        if dialect.name == "postgresql":
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


class JSONType(TypeDecorator):
    """JSONB on PostgreSQL, plain JSON on SQLite."""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.JSONB)
        return dialect.type_descriptor(JSON)
