"""Event log component for control pages."""

import json
import time
from collections import deque
from datetime import datetime

from nicegui import ui

from tekken_overlays.messages import EventRecord


class EventLog:
    """Scrolling log of events a control page sent or heard."""

    def __init__(self, title: str = "Events", max_display: int = 50) -> None:
        self.title = title
        self._buffer: deque[EventRecord] = deque(maxlen=200)
        self._max_display = max_display
        self._log: ui.log | None = None
        self._count_label: ui.label | None = None

    def build(self) -> ui.card:
        card = ui.card().classes("w-full")
        with card:
            with ui.row().classes("items-center w-full"):
                ui.label(self.title).classes("font-medium")
                ui.space()
                self._count_label = ui.label("0 events").classes("text-caption text-grey")
                ui.button(icon="delete", on_click=self.clear).props("flat dense size=sm color=negative")
            self._log = ui.log(max_lines=self._max_display).classes("w-full h-40")
        return card

    def record(self, source: str, event: str, data: dict | None = None) -> EventRecord:
        entry = EventRecord(
            source=source,
            event=event,
            data=data or {},
            timestamp_ms=int(time.time() * 1000),
        )
        self._buffer.append(entry)
        if self._log:
            self._log.push(self._format(entry))
        self._update_count()
        return entry

    def clear(self) -> None:
        if self._log:
            self._log.clear()
        self._buffer.clear()
        self._update_count()

    def _update_count(self) -> None:
        if self._count_label:
            self._count_label.set_text(f"{len(self._buffer)} events")

    @staticmethod
    def _format(entry: EventRecord) -> str:
        ts = datetime.fromtimestamp(entry.timestamp_ms / 1000).strftime("%H:%M:%S")
        data = json.dumps(entry.data, separators=(",", ":"))
        if len(data) > 120:
            data = data[:117] + "..."
        return f"[{ts}] {entry.source} {entry.event} {data}"
