"""Shared world model document and the mutations exposed to the language model."""

from __future__ import annotations

import ast
import builtins
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Union

from storybox.lanes import CancellationToken

EMPTY_XML = "<world></world>"
ROOT_TAG = "world"

Subscriber = Callable[[str], None]

_SAFE_BUILTIN_NAMES = (
    "abs",
    "all",
    "any",
    "bool",
    "dict",
    "enumerate",
    "filter",
    "float",
    "int",
    "isinstance",
    "len",
    "list",
    "map",
    "max",
    "min",
    "range",
    "reversed",
    "round",
    "set",
    "sorted",
    "str",
    "sum",
    "tuple",
    "zip",
    "Exception",
    "KeyError",
    "IndexError",
    "ValueError",
    "TypeError",
)
_SAFE_BUILTINS = {name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES}


@dataclass(slots=True, frozen=True)
class ScriptMutation:
    """Edit the parsed document in place with a short Python script."""

    script: str


@dataclass(slots=True, frozen=True)
class RewriteMutation:
    """Replace the whole document with new XML text."""

    document: str


MutationRequest = Union[ScriptMutation, RewriteMutation]


class ScriptRejectedError(ValueError):
    """Raised when a mutation script reaches outside its two bindings."""


class DocumentView:
    """Read-only ElementTree lookups over the parsed document, without file access."""

    def __init__(self, root: ET.Element) -> None:
        self._root = root

    def getroot(self) -> ET.Element:
        return self._root

    def find(self, path: str, namespaces: dict[str, str] | None = None) -> ET.Element | None:
        return ET.ElementTree(self._root).find(path, namespaces)

    def findall(self, path: str, namespaces: dict[str, str] | None = None) -> list[ET.Element]:
        return ET.ElementTree(self._root).findall(path, namespaces)

    def findtext(self, path: str, default: str | None = None, namespaces: dict[str, str] | None = None) -> str | None:
        return ET.ElementTree(self._root).findtext(path, default, namespaces)

    def iter(self, tag: str | None = None):
        return self._root.iter(tag)


def _check_script(source: str) -> ast.Module:
    tree = ast.parse(source, filename="<update_by_script>", mode="exec")
    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            raise ScriptRejectedError("imports are not available in mutation scripts")
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise ScriptRejectedError(f"access to '{node.attr}' is not allowed")
        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise ScriptRejectedError(f"access to '{node.id}' is not allowed")
    return tree


def serialize(root: ET.Element) -> str:
    return ET.tostring(root, encoding="unicode", short_empty_elements=False)


class WorldModelStore:
    """Single shared XML document, published to subscribers on every change.

    Every mutation is one synchronous call, so each call is atomic with respect
    to the event loop. A lane that snapshots, awaits a model call and then
    applies can still overwrite a concurrent edit from another lane; ``revision``
    lets callers notice that it happened.
    """

    def __init__(self, initial: str = EMPTY_XML, *, logger: logging.Logger | None = None) -> None:
        self._value = initial
        self._revision = 0
        self._subscribers: list[Subscriber] = []
        self._logger = logger or logging.getLogger("storybox.world_model")

    def current(self) -> str:
        return self._value

    @property
    def revision(self) -> int:
        """Number of publishes since the store was created."""
        return self._revision

    @property
    def is_empty(self) -> bool:
        return self._value == EMPTY_XML

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        """Deliver the current document now and every published document later."""
        self._subscribers.append(fn)
        self._notify(fn, self._value)

        def _unsubscribe() -> None:
            if fn in self._subscribers:
                self._subscribers.remove(fn)

        return _unsubscribe

    def apply(self, request: MutationRequest) -> str:
        """Run one mutation and return the tool-facing result text."""
        if isinstance(request, ScriptMutation):
            return self.update_by_script(request.script)
        if isinstance(request, RewriteMutation):
            return self.rewrite_xml(request.document)
        raise TypeError(f"Unsupported mutation request: {type(request).__name__}")

    def update_by_script(self, script: str) -> str:
        self._logger.info("tool_script", extra={"script": script})
        existing = self._value
        try:
            code = compile(_check_script(script), "<update_by_script>", "exec")
            root = ET.fromstring(existing)
            document = DocumentView(root)
            world = root if root.tag == ROOT_TAG else root.find(f".//{ROOT_TAG}")
            exec(code, {"__builtins__": _SAFE_BUILTINS, "document": document, "world": world})  # noqa: S102
            updated = serialize(document.getroot())
            ET.fromstring(updated)
        except Exception as exc:  # noqa: BLE001 - errors are reported back to the model as text.
            self._logger.warning("tool_script_failed", extra={"error": str(exc)})
            return f"Error: {exc}"

        self._logger.info("world_updated", extra={"existing_xml": existing, "new_xml": updated})
        self._publish(updated)
        return "Done"

    def rewrite_xml(self, xml: str) -> str:
        self._logger.info("tool_rewrite", extra={"xml": xml})
        self._publish(xml)
        return "Done"

    def forget(self) -> None:
        """Reset the document to the empty sentinel."""
        self._logger.info("world_forgotten")
        self._publish(EMPTY_XML)

    def export_to(self, path: str | Path) -> Path:
        target = Path(path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self._value, encoding="utf-8")
        self._logger.info("world_exported", extra={"path": str(target)})
        return target

    def import_from(self, path: str | Path) -> str:
        source = Path(path).expanduser()
        if not source.exists():
            raise FileNotFoundError(f"World model file not found: {source}")
        return self.rewrite_xml(source.read_text(encoding="utf-8"))

    def _publish(self, value: str) -> None:
        self._value = value
        self._revision += 1
        for fn in list(self._subscribers):
            self._notify(fn, value)

    def _notify(self, fn: Subscriber, value: str) -> None:
        try:
            fn(value)
        except Exception:  # noqa: BLE001 - one broken subscriber must not stop the others.
            self._logger.exception("subscriber_failed", extra={"subscriber": repr(fn)})


def default_export_name(pattern: str, now: datetime | None = None) -> str:
    """Timestamped file name for an exported world model."""
    return (now or datetime.now()).strftime(pattern)


class WorldModelTools:
    """Tool handlers bound to one lane operation.

    The cancellation token is checked right before each mutation so a superseded
    model call can never publish. Edits by other lanes since the snapshot are
    logged, not rejected.
    """

    def __init__(
        self,
        store: WorldModelStore,
        token: CancellationToken,
        *,
        lane: str = "",
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._token = token
        self._lane = lane
        self._revision = store.revision
        self._logger = logger or logging.getLogger("storybox.world_model")

    def __call__(self, request: MutationRequest) -> str:
        self._token.raise_if_cancelled()
        if self._store.revision != self._revision:
            self._logger.warning(
                "world_changed_since_snapshot",
                extra={"lane": self._lane, "snapshot_revision": self._revision, "revision": self._store.revision},
            )
        result = self._store.apply(request)
        self._revision = self._store.revision
        return result
