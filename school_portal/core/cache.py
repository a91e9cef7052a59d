"""
Query cache with explicit invalidation after mutations.

Read endpoints cache their response models under a QueryKey, which names a
logical resource and the scope it belongs to (an assignment id, a room id,
...). Every mutation lists the resources it makes stale in INVALIDATIONS;
handlers call `query_cache.invalidate_after(mutation, **scopes)` once the
write has committed.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from school_portal.core.config import settings

logger = logging.getLogger(__name__)


class Resource(str, Enum):
    ASSIGNMENTS = "assignments"
    ASSIGNMENT_DETAILS = "assignment-details"
    EXISTING_SUBMISSION = "existing-submission"
    ASSIGNMENT_GRADING = "assignment-grading"
    GRADE = "grade"
    CHAT_ROOMS = "chat-rooms"
    CHAT_MESSAGES = "chat-messages"
    ASSIGNMENT_FILES = "assignment-files"


class Mutation(str, Enum):
    SAVE_ASSIGNMENT = "save-assignment"
    PUBLISH_ASSIGNMENT = "publish-assignment"
    DELETE_ASSIGNMENT = "delete-assignment"
    OPEN_ATTEMPT = "open-attempt"
    SUBMIT_ATTEMPT = "submit-attempt"
    AUTO_GRADE = "auto-grade"
    UPSERT_GRADE = "upsert-grade"
    CREATE_CHAT_ROOM = "create-chat-room"
    SEND_CHAT_MESSAGE = "send-chat-message"
    UPLOAD_ASSIGNMENT_FILE = "upload-assignment-file"
    DELETE_ASSIGNMENT_FILE = "delete-assignment-file"


@dataclass(frozen=True)
class QueryKey:
    resource: Resource
    scope: Optional[str] = None


# (resource, name of the scope argument) pairs; None invalidates every scope
INVALIDATIONS: Dict[Mutation, Tuple[Tuple[Resource, Optional[str]], ...]] = {
    Mutation.SAVE_ASSIGNMENT: (
        (Resource.ASSIGNMENTS, "course"),
        (Resource.ASSIGNMENT_DETAILS, "assignment"),
        (Resource.EXISTING_SUBMISSION, "assignment"),
    ),
    Mutation.PUBLISH_ASSIGNMENT: (
        (Resource.ASSIGNMENTS, "course"),
        (Resource.ASSIGNMENT_DETAILS, "assignment"),
        (Resource.EXISTING_SUBMISSION, "assignment"),
    ),
    Mutation.DELETE_ASSIGNMENT: (
        (Resource.ASSIGNMENTS, "course"),
        (Resource.ASSIGNMENT_DETAILS, "assignment"),
        (Resource.ASSIGNMENT_GRADING, "assignment"),
        (Resource.EXISTING_SUBMISSION, "assignment"),
        (Resource.GRADE, "assignment"),
        (Resource.ASSIGNMENT_FILES, "assignment"),
    ),
    Mutation.OPEN_ATTEMPT: (
        (Resource.EXISTING_SUBMISSION, "assignment"),
        (Resource.ASSIGNMENTS, None),
    ),
    Mutation.SUBMIT_ATTEMPT: (
        (Resource.EXISTING_SUBMISSION, "assignment"),
        (Resource.ASSIGNMENTS, None),
        (Resource.ASSIGNMENT_GRADING, "assignment"),
        (Resource.GRADE, "assignment"),
    ),
    Mutation.AUTO_GRADE: (
        (Resource.EXISTING_SUBMISSION, "assignment"),
        (Resource.ASSIGNMENT_GRADING, "assignment"),
        (Resource.GRADE, "assignment"),
        (Resource.ASSIGNMENTS, None),
    ),
    Mutation.UPSERT_GRADE: (
        (Resource.ASSIGNMENT_GRADING, "assignment"),
        (Resource.GRADE, "assignment"),
        (Resource.ASSIGNMENTS, None),
    ),
    Mutation.CREATE_CHAT_ROOM: (
        (Resource.CHAT_ROOMS, "course"),
    ),
    Mutation.SEND_CHAT_MESSAGE: (
        (Resource.CHAT_MESSAGES, "room"),
    ),
    Mutation.UPLOAD_ASSIGNMENT_FILE: (
        (Resource.ASSIGNMENT_FILES, "assignment"),
    ),
    Mutation.DELETE_ASSIGNMENT_FILE: (
        (Resource.ASSIGNMENT_FILES, "assignment"),
    ),
}


class QueryCache:
    """Time-to-Live cache keyed by QueryKey plus a per-caller variant"""

    def __init__(self, default_ttl: int = 60):
        self.default_ttl = default_ttl
        self._entries: Dict[Tuple[QueryKey, str], Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: QueryKey, variant: str = "") -> Optional[Any]:
        with self._lock:
            entry = self._entries.get((key, variant))
            if entry is None:
                return None
            if time.time() > entry['expires_at']:
                del self._entries[(key, variant)]
                return None
            return entry['value']

    def set(self, key: QueryKey, value: Any, variant: str = "", ttl: Optional[int] = None) -> None:
        ttl = ttl or self.default_ttl
        with self._lock:
            self._entries[(key, variant)] = {
                'value': value,
                'expires_at': time.time() + ttl,
            }

    def get_or_load(self, key: QueryKey, loader: Callable[[], Any], variant: str = "",
                    ttl: Optional[int] = None) -> Any:
        cached = self.get(key, variant)
        if cached is not None:
            return cached
        value = loader()
        self.set(key, value, variant, ttl)
        return value

    def invalidate(self, resource: Resource, scope: Optional[str] = None) -> int:
        """Drop every entry of `resource`, or only the ones in `scope`"""
        with self._lock:
            stale = [
                entry_key for entry_key in self._entries
                if entry_key[0].resource == resource
                and (scope is None or entry_key[0].scope == scope)
            ]
            for entry_key in stale:
                del self._entries[entry_key]
        return len(stale)

    def invalidate_after(self, mutation: Mutation, **scopes: Optional[str]) -> int:
        removed = 0
        for resource, scope_name in INVALIDATIONS[mutation]:
            if scope_name is None:
                removed += self.invalidate(resource)
                continue
            scope = scopes.get(scope_name)
            # Without a concrete scope fall back to the whole resource
            removed += self.invalidate(resource, scope)
        logger.debug("Invalidated %s cached queries after %s", removed, mutation.value)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> Dict[str, Any]:
        current_time = time.time()
        with self._lock:
            active = sum(1 for entry in self._entries.values() if current_time <= entry['expires_at'])
            total = len(self._entries)
        return {
            'total_entries': total,
            'active_entries': active,
            'expired_entries': total - active,
        }


query_cache = QueryCache(default_ttl=settings.query_cache_ttl_seconds)
