"""Connection badge showing a page's transport state."""

from nicegui import ui

from tekken_overlays.messages import ConnectionStatus


class ConnectionBadge:
    """Compact icon + label for a transport or controller status."""

    STATE_ICONS = {
        "connected": ("wifi", "positive"),
        "running": ("check_circle", "positive"),
        "connecting": ("pending", "warning"),
        "starting": ("pending", "warning"),
        "error": ("error", "negative"),
        "disconnected": ("wifi_off", "grey-5"),
        "stopped": ("circle", "grey-5"),
    }

    def __init__(self, name: str, status: ConnectionStatus | None = None) -> None:
        self.name = name
        self._status = status
        self._icon: ui.icon | None = None
        self._label: ui.label | None = None

    def build(self) -> ui.row:
        """Build and return the badge element."""
        row = ui.row().classes("items-center gap-1")
        with row:
            icon_name, color = self._get_icon()
            self._icon = ui.icon(icon_name).classes(f"text-{color}")
            self._label = ui.label(self._get_text()).classes("text-caption")
        return row

    def update(self, status: ConnectionStatus | None) -> None:
        old_color = self._get_icon()[1]
        self._status = status
        icon_name, new_color = self._get_icon()
        if self._icon:
            self._icon.props(f'name="{icon_name}"')
            self._icon.classes(remove=f"text-{old_color}", add=f"text-{new_color}")
        if self._label:
            self._label.set_text(self._get_text())

    def _get_icon(self) -> tuple[str, str]:
        if not self._status:
            return ("circle", "grey-5")
        return self.STATE_ICONS.get(self._status.state, ("circle", "grey-5"))

    def _get_text(self) -> str:
        if not self._status:
            return f"{self.name}: not started"
        if self._status.error:
            return f"{self.name}: {self._status.error}"
        return f"{self.name}: {self._status.state}"
