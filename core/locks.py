"""
Per-key exclusive locks.

Listings, wallets and payment codes are independently lockable units.
A registry hands out one ``threading.Lock`` per key so unrelated keys
never contend.

Usage:
    listing_locks = KeyedLocks("listing")

    with listing_locks.hold(listing_id):
        # single writer for this listing
        ...
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


class KeyedLocks:
    """
    Registry of exclusive locks keyed by entity id.

    An entry exists only while some thread holds or waits for its key.
    The last thread out removes it, so the registry never outgrows the
    number of threads in flight, whatever keys callers send.
    """

    def __init__(self, name: str):
        self._name = name
        self._entries: Dict[str, _Entry] = {}
        self._registry_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the exclusive lock for ``key`` for the duration of the block."""
        with self._registry_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.holders += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._registry_lock:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]

    def active_keys(self) -> List[str]:
        with self._registry_lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._entries)
