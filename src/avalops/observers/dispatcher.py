# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/observers/dispatcher.py
from __future__ import annotations
import logging
from typing import List, Optional
from .events import BaseEvent, new_run_id
from .interface import Observer

log = logging.getLogger("avalops")


class EventBus:
    """Fans events out to observers. ``run_id`` tags every event of one invocation."""

    def __init__(self, observers: Optional[List[Observer]] = None, run_id: Optional[str] = None):
        self._observers: List[Observer] = list(observers or [])
        self.run_id = run_id or new_run_id()

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    def emit(self, event: BaseEvent) -> None:
        for ob in self._observers:
            try:
                ob.notify(event)
            except Exception as e:
                # observers must not break provisioning
                log.warning("observer %s failed on %s: %s", type(ob).__name__, type(event).__name__, e)
