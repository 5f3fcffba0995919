"""Simple in-memory broker for bulk generation progress events."""

from __future__ import annotations

import json
import queue
from typing import Any, Dict, Iterable


class GenerationEventBroker:
    def __init__(self, max_pending: int = 200) -> None:
        self.listeners: set[queue.Queue] = set()
        self.max_pending = max_pending

    def publish(self, payload: Dict) -> None:
        message = json.dumps(payload, default=str)
        for listener in list(self.listeners):
            try:
                listener.put_nowait(message)
            except queue.Full:
                continue

    def listen(self, timeout: float | None = None) -> Iterable[str]:
        q: queue.Queue[str] = queue.Queue(maxsize=self.max_pending)
        self.listeners.add(q)
        try:
            while True:
                try:
                    yield q.get(timeout=timeout)
                except queue.Empty:
                    # Keep-alive so proxies do not drop an idle stream.
                    yield json.dumps({"type": "ping"})
        finally:
            self.listeners.discard(q)


generation_event_broker = GenerationEventBroker()


def publish_checkpoint(checkpoint: Any) -> None:
    generation_event_broker.publish({"type": "checkpoint", "payload": checkpoint.serialize()})


def publish_failure(record: Any) -> None:
    generation_event_broker.publish({"type": "failure", "payload": record.serialize()})
