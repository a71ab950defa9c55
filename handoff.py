# handoff.py
import logging
import threading

logger = logging.getLogger(__name__)


class QueueClosed(Exception):
    """Raised by put() once the queue has been closed."""
    pass


class HandoffQueue:
    """Zero-capacity queue: put() returns only after a consumer took the item.

    get() returns None once the queue is closed and the slot is empty, so
    None can't be used as an item.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._slot = None
        self._closed = False
        # tickets handed out to placed items, and how many of them were taken
        self._placed = 0
        self._taken = 0

    @property
    def closed(self):
        return self._closed

    def put(self, item):
        if item is None:
            raise ValueError("None cannot be put on a HandoffQueue")
        with self._cond:
            # one producer owns the slot at a time
            while self._slot is not None and not self._closed:
                self._cond.wait()
            if self._closed:
                raise QueueClosed("put() on a closed queue")
            self._slot = item
            self._placed += 1
            ticket = self._placed
            self._cond.notify_all()
            # a placed item is always drained, even after close()
            while self._taken < ticket:
                self._cond.wait()

    def get(self):
        with self._cond:
            while self._slot is None and not self._closed:
                self._cond.wait()
            item = self._slot
            if item is not None:
                self._slot = None
                self._taken += 1
                self._cond.notify_all()
            return item

    def close(self):
        """Stop accepting items. Safe to call more than once."""
        with self._cond:
            if self._closed:
                return False
            self._closed = True
            self._cond.notify_all()
        logger.debug("handoff queue closed")
        return True
