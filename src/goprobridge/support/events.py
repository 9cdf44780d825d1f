import threading


class EventSource(object):

    def __init__(self):
        self._handlers = []

    def add(self, handler):
        self._handlers.append(handler)
        return self

    def remove(self, handler):
        if handler in self._handlers:
            self._handlers.remove(handler)
        return self

    def handlers(self):
        return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        self._fire(*args, **kwargs)

    def fire_all(self, events):
        self._fire_all(events)

    def _fire_all(self, events):
        for e in events:
            self._fire(e)

    def _fire(self, *args, **kwargs):
        for handler in self.handlers():
            handler(*args, **kwargs)


class OneShot:
    """
    A latch that can be tripped exactly once, from any thread.
    The first caller of trip() wins and receives True; every later caller receives False.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tripped = False

    @property
    def tripped(self) -> bool:
        return self._tripped

    def trip(self) -> bool:
        with self._lock:
            if self._tripped:
                return False
            self._tripped = True
            return True
