"""Greeting service."""

from __future__ import annotations

import logging
from collections.abc import Iterator

log = logging.getLogger(__name__)


class Helloworld:
    """Returns greetings, once or as a stream."""

    def call(self, name: str) -> str:
        log.info("Received Helloworld.Call request")
        return "Hello " + name

    def stream(self, name: str, messages: int = 0) -> Iterator[str]:
        """Yield the greeting ``messages`` times, at least once when zero."""
        count = messages or 1
        for _ in range(int(count)):
            yield "Hello " + name