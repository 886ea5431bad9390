"""Cache key schema for EduStride.

Key format: {entity_kind}:{owner_id}:{query_hash} for collection reads and
{entity_kind}:{owner_id}:{entity_id} for single-entity reads, plus a user
umbrella namespace user:{user_id}:* for keys scoped to one user. Every key
a user owns therefore matches one of CacheKeys.user_patterns().

Where:
- entity_kind: "portfolio", "skills", "roadmap", "notifications", ...
- owner_id: id of the user the data belongs to
- query_hash: SHA-256 of the canonical (sorted-key) JSON of the query params
- entity_id: id of the single entity read

Segments are escaped so that a delimiter inside a segment can never forge
another key or widen an invalidation pattern.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from enum import Enum
from typing import Any

import orjson

DELIMITER = ":"
WILDCARD = "*"


class EntityKind(str, Enum):
    """Entity kinds cached by this process."""

    PORTFOLIO = "portfolio"
    SKILLS = "skills"
    ROADMAP = "roadmap"
    NOTIFICATIONS = "notifications"
    ACTIVITIES = "activities"
    ACTIVITY_STATS = "activity-stats"
    QUIZZES = "quizzes"


class CacheKeys:
    """Cache key generator following consistent naming convention."""

    USER = "user"

    @staticmethod
    def escape(segment: str) -> str:
        """Escape the delimiter, the wildcard and the escape character."""
        return segment.replace("%", "%25").replace(DELIMITER, "%3A").replace(WILDCARD, "%2A")

    @staticmethod
    def unescape(segment: str) -> str:
        return segment.replace("%2A", WILDCARD).replace("%3A", DELIMITER).replace("%25", "%")

    @classmethod
    def key(cls, *segments: str | Enum) -> str:
        """Join segments into a key.

        Raises:
            ValueError: If no segments are given
        """
        if not segments:
            raise ValueError("A cache key needs at least one segment")
        parts = [s.value if isinstance(s, Enum) else str(s) for s in segments]
        return DELIMITER.join(cls.escape(part) for part in parts)

    @classmethod
    def parse_key(cls, key: str) -> list[str]:
        """Split a key back into its (unescaped) segments."""
        return [cls.unescape(part) for part in key.split(DELIMITER)]

    @staticmethod
    def query_hash(params: Mapping[str, Any] | None) -> str:
        """Canonical hash of query parameters.

        Key order and None-valued parameters do not change the hash, so
        semantically identical queries always map to the same key.
        """
        canonical = {k: v for k, v in (params or {}).items() if v is not None}
        payload = orjson.dumps(canonical, option=orjson.OPT_SORT_KEYS)
        return hashlib.sha256(payload).hexdigest()[:32]

    @classmethod
    def collection(
        cls, kind: EntityKind, owner_id: str, params: Mapping[str, Any] | None = None
    ) -> str:
        """Key for a list/collection read owned by a user."""
        return cls.key(kind, owner_id, cls.query_hash(params))

    @classmethod
    def entity(cls, kind: EntityKind, owner_id: str, entity_id: str) -> str:
        """Key for a single entity, under its owner."""
        return cls.key(kind, owner_id, entity_id)

    @classmethod
    def user_scoped(cls, user_id: str, *segments: str) -> str:
        """Key under the user umbrella namespace."""
        return cls.key(cls.USER, user_id, *segments)

    # -------------------------------------------------------------------------
    # Invalidation patterns
    # -------------------------------------------------------------------------

    @classmethod
    def collection_pattern(cls, kind: EntityKind, owner_id: str) -> str:
        """Pattern matching every collection read of one kind for a user."""
        return cls.key(kind, owner_id) + DELIMITER + WILDCARD

    @classmethod
    def user_pattern(cls, user_id: str) -> str:
        """Pattern for the user umbrella namespace."""
        return cls.key(cls.USER, user_id) + DELIMITER + WILDCARD

    @classmethod
    def user_patterns(cls, user_id: str) -> list[str]:
        """Every pattern under which this process caches data for a user."""
        return [cls.user_pattern(user_id)] + [
            cls.collection_pattern(kind, user_id) for kind in EntityKind
        ]

    @staticmethod
    def pattern_prefix(pattern: str) -> str:
        """Literal prefix of a trailing-wildcard pattern.

        Raises:
            ValueError: If the wildcard is anywhere but at the end
        """
        if not pattern.endswith(WILDCARD):
            raise ValueError(f"Pattern must end with '{WILDCARD}': {pattern!r}")
        prefix = pattern[: -len(WILDCARD)]
        if WILDCARD in prefix:
            raise ValueError(f"Only a trailing wildcard is supported: {pattern!r}")
        return prefix
