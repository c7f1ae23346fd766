"""
Test session persistence for TestFlow AI

Each generation run that succeeds is stored as a session (URL, summary, tests).
Sessions live in Redis; when Redis is unreachable the store falls back to an
in-process client so the API keeps working without persistence.

Key layout:
    testflow:session:{session_id}     JSON session record
    testflow:url_sessions:{url}       list of session ids, newest first
    testflow:urls                     set of URLs with at least one session
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import redis

from config import settings
from models import TestCase
from redis_client import InMemoryClient, RedisClient, get_redis_client

logger = logging.getLogger(__name__)

SESSION_KEY = "testflow:session:{}"
URL_SESSIONS_KEY = "testflow:url_sessions:{}"
URLS_KEY = "testflow:urls"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_test_dict(test: Union[TestCase, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if isinstance(test, TestCase):
        return test.model_dump()
    parsed = TestCase.from_raw(test)
    return parsed.model_dump() if parsed else None


class TestSessionStore:
    """
    Stores and retrieves generated test sessions per URL.

    Args:
        client: RedisClient or InMemoryClient
        now: Callable returning the current UTC datetime
    """

    __test__ = False  # not a pytest class

    def __init__(
        self,
        client: Union[RedisClient, InMemoryClient],
        now: Callable[[], datetime] = _utcnow,
    ):
        self.client = client
        self.now = now

    @property
    def is_persistent(self) -> bool:
        return not isinstance(self.client, InMemoryClient)

    def save_test_session(
        self,
        url: str,
        tests: List[Union[TestCase, Dict[str, Any]]],
        summary: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Save a session and its tests.

        Returns:
            {"sessionId": ..., "testCount": ...}
        """
        created_at = self.now()
        session_id = uuid.uuid4().hex
        test_dicts = [t for t in (_as_test_dict(test) for test in tests) if t]

        session = {
            "sessionId": session_id,
            "url": url,
            "summary": summary,
            "userAgent": user_agent,
            "ipAddress": ip_address,
            "createdAt": created_at.isoformat(),
            "timestamp": int(created_at.timestamp() * 1000),
            "tests": test_dicts,
        }

        self.client.set(SESSION_KEY.format(session_id), session)
        self.client.push_list(URL_SESSIONS_KEY.format(url), session_id)
        self.client.add_to_set(URLS_KEY, url)

        logger.info(f"💾 Saved session {session_id} with {len(test_dicts)} tests for {url}")
        return {"sessionId": session_id, "testCount": len(test_dicts)}

    def _load_sessions(self, url: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        end = -1 if limit is None else limit - 1
        sessions = []
        for session_id in self.client.get_list(URL_SESSIONS_KEY.format(url), 0, end):
            session = self.client.get(SESSION_KEY.format(session_id))
            if isinstance(session, dict):
                sessions.append(session)
        return sessions

    def get_latest_tests_for_url(self, url: str) -> Optional[Dict[str, Any]]:
        """Latest session for a URL as {url, tests, summary, timestamp}, or None."""
        sessions = self._load_sessions(url, limit=1)
        if not sessions:
            return None

        latest = sessions[0]
        return {
            "url": latest["url"],
            "tests": latest.get("tests", []),
            "summary": latest.get("summary", ""),
            "timestamp": latest.get("timestamp", 0),
        }

    def get_test_history_for_url(self, url: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        limit = limit or settings.HISTORY_LIMIT
        return [
            {
                "sessionId": session["sessionId"],
                "url": session["url"],
                "testCount": len(session.get("tests", [])),
                "createdAt": session.get("createdAt"),
                "tests": session.get("tests", []),
            }
            for session in self._load_sessions(url, limit=limit)
        ]

    def cleanup_old_sessions(self, days_old: Optional[int] = None) -> int:
        """Delete sessions older than ``days_old`` days. Returns the number removed."""
        days_old = settings.SESSION_RETENTION_DAYS if days_old is None else days_old
        cutoff = self.now() - timedelta(days=days_old)
        removed = 0

        try:
            for url in self.client.get_set_members(URLS_KEY):
                list_key = URL_SESSIONS_KEY.format(url)
                for session_id in self.client.get_list(list_key):
                    session = self.client.get(SESSION_KEY.format(session_id))
                    created_at = (
                        datetime.fromisoformat(session["createdAt"])
                        if isinstance(session, dict) and session.get("createdAt")
                        else None
                    )
                    if created_at is None or created_at < cutoff:
                        self.client.delete(SESSION_KEY.format(session_id))
                        self.client.remove_from_list(list_key, session_id)
                        removed += 1

                if self.client.list_length(list_key) == 0:
                    self.client.remove_from_set(URLS_KEY, url)
        except redis.RedisError as e:
            logger.error(f"❌ Error cleaning up old sessions: {str(e)}")

        if removed:
            logger.info(f"🧹 Cleaned up {removed} old test sessions")
        return removed

    def get_stats(self) -> Dict[str, int]:
        try:
            urls = self.client.get_set_members(URLS_KEY)
            total_sessions = 0
            total_tests = 0
            unique_urls = 0

            for url in urls:
                sessions = self._load_sessions(url)
                if sessions:
                    unique_urls += 1
                total_sessions += len(sessions)
                total_tests += sum(len(s.get("tests", [])) for s in sessions)

            return {
                "totalSessions": total_sessions,
                "totalTests": total_tests,
                "uniqueUrls": unique_urls,
            }
        except redis.RedisError as e:
            logger.error(f"❌ Error fetching stats: {str(e)}")
            return {"totalSessions": 0, "totalTests": 0, "uniqueUrls": 0}


# Global store instance
_session_store: Optional[TestSessionStore] = None


def get_session_store() -> TestSessionStore:
    """
    Get or create the global store, falling back to memory if Redis is down.
    """
    global _session_store

    if _session_store is None:
        try:
            client = get_redis_client()
        except RuntimeError as e:
            logger.warning(f"⚠️  Redis unavailable, using in-memory session storage: {str(e)}")
            client = InMemoryClient()
        _session_store = TestSessionStore(client)

    return _session_store


def reset_session_store():
    global _session_store
    _session_store = None
