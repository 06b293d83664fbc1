import time

from PyQt5.QtCore import QTimer

from scheduler import Handle


class QtScheduler:
    """Runs lab callbacks on the Qt event loop"""

    def __init__(self, parent):
        self.parent = parent

    def time(self):
        return time.monotonic()

    def _timer(self, seconds, callback, single_shot):
        timer = QTimer(self.parent)
        timer.setSingleShot(single_shot)

        def release():
            timer.stop()
            timer.deleteLater()

        handle = Handle(release)
        timer.timeout.connect(callback)
        if single_shot:
            def fired():
                # the timer is gone after this, later cancel() calls must not touch it
                handle.cancelled = True
                timer.deleteLater()
            timer.timeout.connect(fired)
        timer.start(max(int(seconds * 1000), 1))
        return handle

    def call_later(self, delay, callback):
        return self._timer(delay, callback, True)

    def call_every(self, interval, callback):
        return self._timer(interval, callback, False)
