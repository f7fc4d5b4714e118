# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/observers/interface.py

from __future__ import annotations
from typing import Protocol, runtime_checkable
from .events import BaseEvent


@runtime_checkable
class Observer(Protocol):
    """
    Sink for lifecycle events. notify() runs inline on the emitting task,
    between stack polls and discovery listings, so it must return quickly.
    """

    def notify(self, event: BaseEvent) -> None: ...
