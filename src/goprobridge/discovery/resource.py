"""
Tracks a changing set of resources, such as the devices attached to the host, and publishes
an event for each resource that appears or disappears.

Resources are identified by a key. A resource whose key is unchanged but whose details differ
is reported as removed and then added.
"""

import logging
import threading

from goprobridge.support.events import EventSource
from goprobridge.support.mixins import CommonEqualityMixin

logger = logging.getLogger(__name__)


class ResourceEvent(CommonEqualityMixin):
    """
    :param source  the discovery that posted the event
    :param key  identifies the resource
    :param resource  the resource details
    """
    def __init__(self, source, key, resource):
        self.source = source
        self.key = key
        self.resource = resource


class ResourceAvailableEvent(ResourceEvent):
    """ The resource has appeared. """


class ResourceUnavailableEvent(ResourceEvent):
    """ The resource has gone. """


class ResourceDiscovery:
    """ Publishes ResourceEvents to the listeners. """
    def __init__(self):
        self.listeners = EventSource()


class PolledResourceDiscovery(ResourceDiscovery):
    """
    Compares the resources present at each call to update() with those present at the previous call.

    Subclasses provide _fetch_available(), and may narrow the resources with _is_allowed().
    """

    def __init__(self):
        super().__init__()
        self.previous = {}
        self._lock = threading.Lock()

    def _fetch_available(self) -> dict:
        """ :return: the present resources, by key. """
        return {}

    def _is_allowed(self, key, resource):
        return True

    def attached(self, key, resource):
        logger.info("resource available: %s" % key)

    def detached(self, key, resource):
        logger.info("resource unavailable: %s" % key)

    def reset(self):
        """ forgets the known resources, so the next update reports every present resource as available. """
        with self._lock:
            self.previous = {}

    def changes(self, available: dict) -> list:
        """
        :param available: the present resources, by key.
        :return: the events that take the previous resources to the available ones.
        """
        events = []
        for key in sorted(set(self.previous) | set(available), key=str):
            before = self.previous.get(key)
            after = available.get(key)
            if before is not None and before == after:
                continue
            if before is not None:
                self.detached(key, before)
                events.append(ResourceUnavailableEvent(self, key, before))
            if after is not None:
                self.attached(key, after)
                events.append(ResourceAvailableEvent(self, key, after))
        return events

    def update(self):
        """ fetches the present resources and fires an event for each change, on the calling thread. """
        available = {k: v for k, v in self._fetch_available().items() if self._is_allowed(k, v)}
        with self._lock:
            events = self.changes(available)
            self.previous = available
        self.listeners.fire_all(events)
