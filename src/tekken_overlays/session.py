"""Per-page session context.

A ``PageSession`` is built once when a page (or CLI command) starts and is
passed to everything that needs the connection token or per-tab ephemeral
keys. It reads and writes through two storages with different reach:

- ``store``: one browser (NiceGUI ``app.storage.user``) or, for the CLI, one
  operator's JSON file. Holds the connection key and control selections.
- ``tab_store``: one browser tab (NiceGUI ``app.storage.tab``). Holds the
  last texture the tab showed, so a reload does not repeat it.

Nothing here is shared between two visitors of the same server.
"""

import json
import logging
import random
import uuid
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

CONNECTION_KEY = "connectionKey"
LAST_TEXTURE_KEY = "lnw_last_texture_overlay"


class SessionStorage(Protocol):
    """Key/value storage a session persists into."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MappingStore:
    """Session storage over a mutable mapping such as ``app.storage.user``.

    Setting a key to None removes it.
    """

    def __init__(self, data: MutableMapping[str, Any]) -> None:
        self.data = data

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        if value is None:
            self.data.pop(key, None)
        else:
            self.data[key] = value


class SessionStore:
    """Small JSON file used as the CLI's persisted storage."""

    def __init__(self, path: Path) -> None:
        self.path = path.expanduser()

    def load(self) -> dict[str, Any]:
        """Whole file as a dict. Missing, empty or corrupt files read as empty."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning(f"Could not read session store {self.path}: {e}")
            return {}
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Session store {self.path} is not valid JSON, ignoring it")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Write one key through to disk. None removes the key."""
        data = self.load()
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")


@dataclass
class PageSession:
    """Explicit context for one page instance.

    Attributes:
        token: Connection token, or None for a degraded render-only page
        tab_id: Identifies this tab in logs
        params: Query parameters the page was opened with
        ephemeral: Per-tab keys that do not outlive the page
        store: Per-browser storage (token, selections)
        tab_store: Per-tab storage (last texture)
    """

    token: str | None
    tab_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    params: dict[str, str] = field(default_factory=dict)
    ephemeral: dict[str, Any] = field(default_factory=dict)
    store: SessionStorage | None = None
    tab_store: SessionStorage | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, str], store: SessionStorage | None = None) -> "PageSession":
        """Build a session from query parameters, falling back to the store for the key."""
        token = params.get("key") or None
        if token is None and store is not None:
            token = store.get(CONNECTION_KEY) or None
        return cls(token=token, params=dict(params), store=store)

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    def remember_token(self) -> None:
        """Persist the current token so this browser's later pages can omit ``?key=``."""
        if self.store is not None and self.token:
            self.store.set(CONNECTION_KEY, self.token)

    def forget_token(self) -> None:
        """Drop a stored token the server refused, so it is not retried on reload."""
        if self.store is not None and self.store.get(CONNECTION_KEY) is not None:
            logger.info(f"[{self.tab_id}] Forgetting refused connection key")
            self.store.set(CONNECTION_KEY, None)

    def int_param(self, name: str) -> int | None:
        value = self.params.get(name)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning(f"[{self.tab_id}] Ignoring non-integer {name}={value!r}")
            return None

    def choose_texture(self, textures: Sequence[str], rng: random.Random | None = None) -> str | None:
        """Pick a texture different from the one this tab showed last.

        Falls back to any texture when only the last one is available.
        """
        if not textures:
            return None
        rng = rng or random.Random()
        last = self.tab_store.get(LAST_TEXTURE_KEY) if self.tab_store is not None else None
        last = self.ephemeral.get(LAST_TEXTURE_KEY, last)
        candidates = [t for t in textures if t != last] or list(textures)
        choice = rng.choice(candidates)
        self.ephemeral[LAST_TEXTURE_KEY] = choice
        if self.tab_store is not None:
            self.tab_store.set(LAST_TEXTURE_KEY, choice)
        return choice
