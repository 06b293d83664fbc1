import heapq
import itertools


class Handle:
    """Cancellation handle for a scheduled callback"""

    def __init__(self, cancel_fn=None):
        self._cancel_fn = cancel_fn
        self.cancelled = False

    def cancel(self):
        if self.cancelled:
            return
        self.cancelled = True
        if self._cancel_fn is not None:
            self._cancel_fn()


class ManualScheduler:
    """Virtual clock scheduler. Time only moves when advance() is called.

    Used wherever the lab needs to run without a Qt event loop, so a whole
    session can be stepped through deterministically.
    """

    def __init__(self, start=0.0):
        self._now = start
        self._queue = []
        self._seq = itertools.count()

    def time(self):
        return self._now

    def call_later(self, delay, callback):
        handle = Handle()
        self._push(self._now + delay, callback, handle, None)
        return handle

    def call_every(self, interval, callback):
        if interval <= 0:
            raise ValueError("interval must be positive")
        handle = Handle()
        self._push(self._now + interval, callback, handle, interval)
        return handle

    def _push(self, when, callback, handle, interval):
        heapq.heappush(self._queue, (when, next(self._seq), callback, handle, interval))

    @property
    def pending(self):
        return sum(1 for entry in self._queue if not entry[3].cancelled)

    def advance(self, seconds):
        """Move the clock forward, running everything that falls due in order."""
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, callback, handle, interval = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = when
            if interval is not None:
                self._push(when + interval, callback, handle, interval)
            callback()
        self._now = target
