"""In-flight guard for mutation requests.

The web client disables a form's submit button while its request runs;
the guard enforces the same rule on the server so a double click on a
slow network cannot create the same appointment twice.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Hashable, Set

from carelink.core.exceptions import DuplicateSubmissionError

logger = logging.getLogger(__name__)


class SubmissionGuard:
    # Only touched from the event loop thread, so a plain set is enough.
    def __init__(self):
        self._in_flight: Set[Hashable] = set()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._in_flight

    @asynccontextmanager
    async def hold(self, key: Hashable):
        if key in self._in_flight:
            logger.info("Rejected duplicate submission %s", key)
            raise DuplicateSubmissionError()
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)
