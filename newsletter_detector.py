# newsletter_detector.py
"""
Newsletter detection: runs every signal scanner over a message, sums the
weights into a 0-100 confidence and compares it against a threshold.

Results are cached per (message id, received timestamp, threshold). The cache
is an explicit object handed to the detector so several detectors (or
workers) never share hidden module state.
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Hashable, Optional, Tuple

import config
from models.entities import DetectionResult, RawMessage
from signal_scanners import (
    check_body_content,
    check_email_structure,
    check_headers,
    check_recipient_patterns,
    check_sender_patterns,
    check_subject,
)

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 60
MAX_CONFIDENCE = 100
REASON_SIGNAL_COUNT = 3

DETECTION_ERROR = DetectionResult(
    is_newsletter=False,
    confidence=0,
    signals=("detection-error",),
    reason="detection-error",
)

EVICTION_POLICIES = ("fifo", "lru")


class DetectionCache:
    """
    Bounded mapping of cache keys to DetectionResult.

    policy="fifo" evicts the oldest inserted entry; reads do not refresh it.
    policy="lru" moves an entry to the back on every hit.
    All operations hold a lock, so one cache may serve several threads.
    """

    def __init__(self, capacity: int = 1000, policy: str = "fifo"):
        if capacity < 1:
            raise ValueError("cache capacity must be at least 1")
        if policy not in EVICTION_POLICIES:
            raise ValueError(f"unknown eviction policy: {policy!r}")
        self.capacity = capacity
        self.policy = policy
        self._entries: "OrderedDict[Hashable, DetectionResult]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[DetectionResult]:
        with self._lock:
            result = self._entries.get(key)
            if result is not None and self.policy == "lru":
                self._entries.move_to_end(key)
            return result

    def put(self, key: Hashable, result: DetectionResult) -> None:
        with self._lock:
            if key in self._entries:
                self._entries[key] = result
                if self.policy == "lru":
                    self._entries.move_to_end(key)
                return
            while len(self._entries) >= self.capacity:
                self._entries.popitem(last=False)
            self._entries[key] = result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries


def cache_key(message: RawMessage, threshold: int) -> Tuple[str, Optional[str], int]:
    return (message.id, message.received_at, threshold)


class NewsletterDetector:
    def __init__(self, cache: Optional[DetectionCache] = None):
        self.cache = cache if cache is not None else DetectionCache(
            capacity=config.NEWSLETTER_CACHE_SIZE,
            policy=config.NEWSLETTER_CACHE_POLICY,
        )

    def detect(self, message: Optional[RawMessage], threshold: int = DEFAULT_THRESHOLD) -> DetectionResult:
        """
        Classify one message.

        Missing messages or ids, and any scanner crash, give DETECTION_ERROR
        (not a newsletter) so contact extraction is never blocked.
        """
        if message is None or not message.id:
            return DETECTION_ERROR

        key = cache_key(message, threshold)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            result = self._score(message, threshold)
        except Exception:
            logger.error("Newsletter detection failed for message %s", message.id, exc_info=True)
            return DETECTION_ERROR

        self.cache.put(key, result)
        return result

    def _score(self, message: RawMessage, threshold: int) -> DetectionResult:
        signals = []
        score = 0
        score += check_headers(message.headers, signals)
        score += check_sender_patterns(message.sender, signals)
        score += check_body_content(message.body, signals)
        score += check_recipient_patterns(
            message.to_recipients, message.cc_recipients, message.bcc_recipients, signals
        )
        score += check_email_structure(message.body, signals)
        score += check_subject(message.subject, signals)

        confidence = max(0, min(score, MAX_CONFIDENCE))
        return DetectionResult(
            is_newsletter=confidence >= threshold,
            confidence=confidence,
            signals=tuple(signals),
            reason=", ".join(signals[:REASON_SIGNAL_COUNT]) or "no-signals",
        )


_default_detector: Optional[NewsletterDetector] = None


def detect_newsletter(
    message: Optional[RawMessage],
    threshold: int = DEFAULT_THRESHOLD,
    detector: Optional[NewsletterDetector] = None,
) -> DetectionResult:
    """Convenience wrapper; without a detector a lazily built default one is used."""
    global _default_detector
    if detector is None:
        if _default_detector is None:
            _default_detector = NewsletterDetector()
        detector = _default_detector
    return detector.detect(message, threshold)
