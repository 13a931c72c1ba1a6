"""
Keyed tree store abstraction for the Firebase Realtime Database and an
in-memory test implementation.

Paths are slash-delimited (``users/employees/{uid}``). Writing ``None`` or
removing the last child of a node removes the node, as in the Realtime
Database; empty mappings never exist in the tree.
"""

from __future__ import annotations

import copy
import random
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Protocol

from firebase_admin import db as firebase_db
from firebase_admin import exceptions as firebase_exceptions

from jobboard.errors import StorageFailed

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


class TreeStore(Protocol):
    """Operations the services need from the hierarchical store."""

    # True when update() with several paths lands all-or-nothing.
    atomic_multi_path: bool

    def get(self, path: str) -> Any:
        ...

    def set(self, path: str, value: Any) -> None:
        ...

    def update(self, path: str, values: dict) -> None:
        ...

    def push(self, path: str, value: Any) -> str:
        ...

    def remove(self, path: str) -> None:
        ...

    def generate_key(self) -> str:
        ...

    def create_if_absent(self, path: str, value: Any) -> bool:
        ...


def split_path(path: str) -> list[str]:
    return [segment for segment in path.strip("/").split("/") if segment]


def join_path(*parts: str) -> str:
    return "/".join(segment for part in parts for segment in split_path(str(part)))


class PushIdGenerator:
    """
    Generates 20-character keys in the Realtime Database push-key format.

    The first 8 characters encode the millisecond timestamp so keys sort
    chronologically; keys minted within the same millisecond increment the
    random suffix to stay ordered.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last_ms = 0
        self._last_rand = [0] * 12

    def __call__(self) -> str:
        now = int(time.time() * 1000)
        with self._lock:
            if now == self._last_ms:
                for i in range(11, -1, -1):
                    if self._last_rand[i] != 63:
                        self._last_rand[i] += 1
                        break
                    self._last_rand[i] = 0
            else:
                self._last_ms = now
                self._last_rand = [random.randrange(64) for _ in range(12)]
            suffix = "".join(PUSH_CHARS[i] for i in self._last_rand)

        stamp = []
        for _ in range(8):
            stamp.append(PUSH_CHARS[now % 64])
            now //= 64
        return "".join(reversed(stamp)) + suffix


def _prune(value: Any) -> Any:
    if isinstance(value, dict):
        pruned = {}
        for key, child in value.items():
            child = _prune(child)
            if child is not None:
                pruned[str(key)] = child
        return pruned or None
    return value


class InMemoryTreeStore:
    """Simple in-memory tree for development and tests."""

    def __init__(self, *, atomic_multi_path: bool = True):
        self.root: dict = {}
        self.atomic_multi_path = atomic_multi_path
        self._lock = threading.RLock()
        self._keys = PushIdGenerator()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.root = {}

    def get(self, path: str) -> Any:
        with self._lock:
            node: Any = self.root
            for segment in split_path(path):
                if not isinstance(node, dict) or segment not in node:
                    return None
                node = node[segment]
            return copy.deepcopy(node) if node != {} else None

    def set(self, path: str, value: Any) -> None:
        with self._lock:
            self._write(split_path(path), copy.deepcopy(value))

    def update(self, path: str, values: dict) -> None:
        if not values:
            raise ValueError("update() needs at least one child path")
        base = split_path(path)
        with self._lock:
            for key, value in values.items():
                self._write(base + split_path(key), copy.deepcopy(value))

    def push(self, path: str, value: Any) -> str:
        key = self.generate_key()
        self.set(join_path(path, key), value)
        return key

    def remove(self, path: str) -> None:
        self.set(path, None)

    def generate_key(self) -> str:
        return self._keys()

    def create_if_absent(self, path: str, value: Any) -> bool:
        with self._lock:
            if self.get(path) is not None:
                return False
            self.set(path, value)
            return True

    def _write(self, segments: list[str], value: Any) -> None:
        value = _prune(value)
        if not segments:
            self.root = value if isinstance(value, dict) else {}
            return

        parent = self.root
        trail: list[tuple[dict, str]] = []
        for segment in segments[:-1]:
            child = parent.get(segment)
            if not isinstance(child, dict):
                if value is None:
                    return
                child = {}
                parent[segment] = child
            trail.append((parent, segment))
            parent = child

        if value is None:
            parent.pop(segments[-1], None)
        else:
            parent[segments[-1]] = value

        for ancestor, segment in reversed(trail):
            if ancestor[segment]:
                break
            del ancestor[segment]


@contextmanager
def _translate_errors(operation: str, path: str) -> Iterator[None]:
    try:
        yield
    except firebase_db.TransactionAbortedError as e:
        raise StorageFailed(
            f"Database {operation} aborted at {path or '/'}", detail=str(e)
        ) from e
    except firebase_exceptions.FirebaseError as e:
        raise StorageFailed(
            f"Database {operation} failed at {path or '/'}", detail=str(e)
        ) from e


@dataclass
class FirebaseTreeStore:
    """
    Realtime Database client. Multi-path updates are atomic server-side.
    """

    app: Optional[Any] = None
    atomic_multi_path: bool = True
    _keys: PushIdGenerator = field(default_factory=PushIdGenerator, repr=False)

    def _ref(self, path: str):
        return firebase_db.reference("/" + join_path(path), app=self.app)

    def get(self, path: str) -> Any:
        with _translate_errors("read", path):
            return self._ref(path).get()

    def set(self, path: str, value: Any) -> None:
        with _translate_errors("write", path):
            if value is None:
                self._ref(path).delete()
            else:
                self._ref(path).set(value)

    def update(self, path: str, values: dict) -> None:
        with _translate_errors("update", path):
            self._ref(path).update(values)

    def push(self, path: str, value: Any) -> str:
        with _translate_errors("push", path):
            return self._ref(path).push(value).key

    def remove(self, path: str) -> None:
        with _translate_errors("remove", path):
            self._ref(path).delete()

    def generate_key(self) -> str:
        return self._keys()

    def create_if_absent(self, path: str, value: Any) -> bool:
        claimed = False

        def _claim(current):
            nonlocal claimed
            # The transaction function can run several times; the last run wins.
            claimed = current is None
            return value if claimed else current

        with _translate_errors("transaction", path):
            self._ref(path).transaction(_claim)
        return claimed
