"""World model preview, reset and file export/import."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from storybox.fields import TextField
from storybox.world_model import WorldModelStore, default_export_name


class MemoryView:
    """Mirrors the world model into a preview field and handles persistence."""

    def __init__(
        self,
        store: WorldModelStore,
        *,
        export_dir: str | Path = ".",
        filename_pattern: str = "storybox-%Y%m%d-%H%M%S.xml",
    ) -> None:
        self._store = store
        self._export_dir = Path(export_dir)
        self._filename_pattern = filename_pattern
        self.preview = TextField("xml-preview")
        self._unsubscribe = store.subscribe(self._render)

    def forget(self) -> None:
        self._store.forget()

    def export(self, path: str | Path | None = None, *, now: datetime | None = None) -> Path:
        target = Path(path) if path else self._export_dir / default_export_name(self._filename_pattern, now)
        return self._store.export_to(target)

    def import_file(self, path: str | Path) -> str:
        return self._store.import_from(path)

    def close(self) -> None:
        self._unsubscribe()

    def _render(self, xml: str) -> None:
        self.preview.value = xml
