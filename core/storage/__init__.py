"""
스토리지 모듈

감사 로그(Event Store) 저장소 제공
"""

from core.storage.event_store import EventStore

__all__ = [
    "EventStore",
]
