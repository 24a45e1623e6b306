"""Preferences store over a simple key-value storage backend.

The whole record lives under one key, merged over the defaults on every
read. Saving notifies subscribers, which is how a live timer learns about
changed auto-start and notification flags.
"""

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from spireworks.schemas.preferences import Preferences

logger = logging.getLogger(__name__)

SETTINGS_KEY = "userSettings"

PreferencesListener = Callable[[Preferences], None]


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStorage:
    """Dict-backed storage; ``data`` can be written back wherever it came from."""

    def __init__(self, data: dict | None = None):
        self.data: dict = dict(data or {})

    def get(self, key: str) -> Any:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value


class JsonFileStorage:
    """Durable local storage: one JSON object per file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Unreadable preferences file %s, ignoring", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Any:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def merge_preferences(stored: Any, changes: dict | None = None) -> Preferences:
    """Merge stored values and ``changes`` over the defaults.

    Anything unreadable is dropped in favour of the defaults.
    """
    base: dict = {}
    if isinstance(stored, str):
        try:
            stored = json.loads(stored)
        except ValueError:
            logger.warning("Stored preferences are not valid JSON, using defaults")
            stored = None
    if isinstance(stored, dict):
        try:
            base = Preferences.model_validate(stored).model_dump()
        except ValidationError:
            logger.warning("Stored preferences are invalid, using defaults")
    return Preferences.model_validate({**base, **(changes or {})})


def should_notify(preferences: Preferences, channel: str) -> bool:
    """Whether a completion notification may use ``channel``."""
    if channel == "sound":
        return preferences.sound_notifications
    if channel == "desktop":
        return preferences.desktop_notifications
    return True


class PreferencesStore:
    def __init__(self, storage: KeyValueStorage, key: str = SETTINGS_KEY):
        self.storage = storage
        self.key = key
        self._listeners: list[PreferencesListener] = []

    def load(self) -> Preferences:
        return merge_preferences(self.storage.get(self.key))

    def save(self, preferences: Preferences) -> Preferences:
        self.storage.set(self.key, preferences.model_dump(by_alias=True))
        for listener in list(self._listeners):
            try:
                listener(preferences)
            except Exception:
                logger.exception("Preferences listener failed")
        return preferences

    def update(self, **changes) -> Preferences:
        return self.save(merge_preferences(self.storage.get(self.key), changes))

    def reset(self) -> Preferences:
        return self.save(Preferences())

    def subscribe(self, listener: PreferencesListener) -> Callable[[], None]:
        """Register ``listener`` for saves; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
