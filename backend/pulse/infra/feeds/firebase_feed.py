"""Change feed over Firebase Realtime Database listeners."""
import asyncio
import copy
import logging
from typing import Any, Optional

import firebase_admin
from firebase_admin import db

from pulse.domain.watchers.models import ChangeEvent, ChangeHandler, ChangeKind

logger = logging.getLogger(__name__)


def _split(path: Optional[str]) -> list[str]:
    return [p for p in (path or "/").split("/") if p]


def _set_path(container: Any, parts: list[str], value: Any) -> Any:
    """Write value at parts below container; empty maps collapse to None like the database does."""
    if not parts:
        return value
    node = dict(container) if isinstance(container, dict) else {}
    child = _set_path(node.get(parts[0]), parts[1:], value)
    if child is None:
        node.pop(parts[0], None)
    else:
        node[parts[0]] = child
    return node or None


class RealtimeEventTranslator:
    """Turns put/patch listener events for one collection into per-child ChangeEvents.

    Keeps a mirror of the collection so that an event deep inside a child can
    be reported with the child's full state. The first put at the root is the
    initial snapshot: every child comes out as `added`.
    """

    def __init__(self, collection: str):
        self.collection = collection
        self._mirror: dict[str, dict[str, Any]] = {}
        self._primed = False

    def _event(self, key: str, kind: ChangeKind, data: dict[str, Any]) -> ChangeEvent:
        return ChangeEvent(collection=self.collection, key=key, kind=kind, data=copy.deepcopy(data))

    def _apply_child(self, key: str, value: Any) -> list[ChangeEvent]:
        existed = key in self._mirror
        if value is None:
            previous = self._mirror.pop(key, None)
            return [self._event(key, ChangeKind.REMOVED, previous or {})] if existed else []
        if not isinstance(value, dict):
            logger.debug("Ignoring non-object child %s/%s", self.collection, key)
            return []
        if existed and self._mirror[key] == value:
            return []
        self._mirror[key] = value
        return [self._event(key, ChangeKind.MODIFIED if existed else ChangeKind.ADDED, value)]

    def _root_put(self, data: Any) -> list[ChangeEvent]:
        snapshot = data if isinstance(data, dict) else {}
        if not self._primed:
            self._primed = True
            self._mirror = {k: v for k, v in snapshot.items() if isinstance(v, dict)}
            return [self._event(k, ChangeKind.ADDED, v) for k, v in self._mirror.items()]
        events = []
        for key in [k for k in self._mirror if k not in snapshot]:
            events.extend(self._apply_child(key, None))
        for key, value in snapshot.items():
            events.extend(self._apply_child(key, value))
        return events

    def translate(self, event_type: str, path: Optional[str], data: Any) -> list[ChangeEvent]:
        parts = _split(path)
        if event_type == "put":
            if not parts:
                return self._root_put(data)
            key = parts[0]
            return self._apply_child(key, _set_path(self._mirror.get(key), parts[1:], data))
        if event_type == "patch":
            updates = data if isinstance(data, dict) else {}
            touched: dict[str, Any] = {}
            for sub_path, value in updates.items():
                full = parts + _split(sub_path)
                if not full:
                    continue
                key = full[0]
                current = touched[key] if key in touched else self._mirror.get(key)
                touched[key] = _set_path(current, full[1:], value)
            events = []
            for key, value in touched.items():
                events.extend(self._apply_child(key, value))
            return events
        return []


class FirebaseChangeFeed:
    """ChangeFeed backed by `db.reference(...).listen()`.

    The SDK delivers events on its own listener thread; they are translated
    there and handed to the event loop through a queue.
    """

    def __init__(self, app: firebase_admin.App, root_path: str = ""):
        self._app = app
        self._root = root_path.strip("/")

    def path_for(self, collection: str) -> str:
        return f"/{self._root}/{collection}" if self._root else f"/{collection}"

    async def subscribe(self, collection: str, handler: ChangeHandler) -> None:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        translator = RealtimeEventTranslator(collection)

        def on_event(event) -> None:
            try:
                changes = translator.translate(event.event_type, event.path, event.data)
            except Exception as e:
                logger.error("Could not translate %s event on %s: %s", event.event_type, collection, e, exc_info=True)
                return
            for change in changes:
                loop.call_soon_threadsafe(queue.put_nowait, change)

        reference = db.reference(self.path_for(collection), app=self._app)
        registration = await asyncio.to_thread(reference.listen, on_event)
        logger.info("Listening to %s", self.path_for(collection))
        try:
            while True:
                change = await queue.get()
                await handler(change)
        finally:
            await asyncio.to_thread(registration.close)
            logger.info("Stopped listening to %s", self.path_for(collection))
