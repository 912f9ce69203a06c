"""Site-wide settings: pinned hero item, lockdown flag and announcement."""
import logging
from typing import Any

from .database import KeyValueStore
from .models import MediaKind

logger = logging.getLogger(__name__)

FEATURED_KEY = "settings:featured"
LOCKDOWN_KEY = "settings:lockdown"
ANNOUNCEMENT_KEY = "settings:announcement"


class SettingsStore:
    def __init__(self, store: KeyValueStore):
        self.store = store

    def get_featured(self) -> tuple[int, MediaKind | None] | None:
        """Pinned hero item as (item_id, kind); kind is None when it was pinned by id only."""
        raw = self.store.get(FEATURED_KEY)
        if not raw:
            return None
        kind = raw.get("kind")
        return int(raw["item_id"]), MediaKind(kind) if kind else None

    def pin_featured(self, item_id: int, kind: MediaKind | str | None = None) -> None:
        value: dict[str, Any] = {"item_id": int(item_id), "kind": MediaKind(kind).value if kind else None}
        self.store.set(FEATURED_KEY, value)
        logger.info(f"Pinned featured item {item_id}" + (f" ({value['kind']})" if kind else ""))

    def clear_featured(self) -> None:
        self.store.delete(FEATURED_KEY)
        logger.info("Cleared featured item")

    def is_locked(self) -> bool:
        return bool((self.store.get(LOCKDOWN_KEY) or {}).get("locked"))

    def lockdown_message(self) -> str:
        return (self.store.get(LOCKDOWN_KEY) or {}).get("message", "")

    def set_lockdown(self, locked: bool, message: str = "") -> None:
        self.store.set(LOCKDOWN_KEY, {"locked": bool(locked), "message": message})

    def get_announcement(self) -> str | None:
        return self.store.get(ANNOUNCEMENT_KEY)

    def set_announcement(self, message: str | None) -> None:
        if message:
            self.store.set(ANNOUNCEMENT_KEY, message)
        else:
            self.store.delete(ANNOUNCEMENT_KEY)
