""" Diagnostics: count database queries and the time they take """

from __future__ import annotations

from time import monotonic
from typing import Union

import sqlalchemy as sa


class QueryCounter:
    """ Counts the number of queries executed on an engine, and the time spent on them

    Usage:
        with QueryCounter(engine) as counter:
            ...
        counter.count, counter.timer_ms
    """

    def __init__(self, engine: Union[sa.engine.Engine, sa.engine.Connection]):
        self.engine = engine
        self.count = 0
        self.timer_ms = 0.0
        self._started_at: list[float] = []

    def start_logging(self):
        sa.event.listen(self.engine, "before_cursor_execute", self._before_cursor_execute_event_handler, named=True)
        sa.event.listen(self.engine, "after_cursor_execute", self._after_cursor_execute_event_handler, named=True)
        return self

    def stop_logging(self):
        sa.event.remove(self.engine, "before_cursor_execute", self._before_cursor_execute_event_handler)
        sa.event.remove(self.engine, "after_cursor_execute", self._after_cursor_execute_event_handler)
        self._done()

    def reset(self):
        self.count = 0
        self.timer_ms = 0.0

    def _done(self):
        """ Handler executed when logging is stopped """

    def _before_cursor_execute_event_handler(self, **kw):
        self._started_at.append(monotonic())

    def _after_cursor_execute_event_handler(self, **kw):
        self.count += 1
        if self._started_at:
            self.timer_ms += (monotonic() - self._started_at.pop()) * 1000

    # Context manager

    def __enter__(self):
        return self.start_logging()

    def __exit__(self, *exc):
        self.stop_logging()
        return False
