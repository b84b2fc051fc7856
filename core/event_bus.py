# core/event_bus.py
from collections import defaultdict
from typing import Type, Callable, Dict, List, Any, Set
import asyncio
import logging

logger = logging.getLogger(__name__)

class Event:
    """Base class for all events."""
    pass

class EventBus:
    def __init__(self):
        self._subs: Dict[Type[Event], List[Callable[[Event], Any]]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, event_type: Type[Event], handler: Callable[[Event], Any]):
        """Register a handler for a specific event type."""
        self._subs[event_type].append(handler)

    def unsubscribe(self, event_type: Type[Event], handler: Callable[[Event], Any]):
        """Remove a handler; unknown handlers are ignored."""
        handlers = self._subs.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def handlers(self, event_type: Type[Event]) -> List[Callable[[Event], Any]]:
        return list(self._subs.get(event_type, ()))

    def emit(self, event: Event) -> List[asyncio.Task]:
        """
        Publish an event to all subscribers (sync or async).
        Returns the tasks scheduled for coroutine handlers.
        """
        tasks = []
        # copy: handlers may unsubscribe while we iterate
        for handler in list(self._subs.get(type(event), ())):
            result = handler(event)
            # If handler returns a coroutine, schedule it
            if asyncio.iscoroutine(result):
                task = asyncio.create_task(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)
                tasks.append(task)
        return tasks

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Async handler failed: %r", task.exception())
