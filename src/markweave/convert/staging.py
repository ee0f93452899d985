"""Per-conversion staging workspaces.

Each conversion gets its own randomly named directory under the artifacts
root. The staged source and every artifact file live inside it, and the
directory is removed on release unless it was marked for preservation.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, Optional

from markweave.core import workspace as workspace_mod
from markweave.core.logging import get_logger

from .artifacts import ArtifactCollection, ImageArtifact
from .errors import ConfigurationError, StagingError
from .segments import MetadataKeys

_COPY_CHUNK = 1024 * 1024

_IMAGE_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
    "image/webp": ".webp",
    "image/tiff": ".tiff",
    "image/svg+xml": ".svg",
}


class Disposition(Enum):
    """What happens to a workspace directory on release."""

    DELETE = "delete"
    PRESERVE = "preserve"


def _default_artifacts_root() -> Path:
    return workspace_mod.ensure_workspace().path_for("artifacts")


class RootResolver:
    """Holds the directory under which conversion workspaces are created.

    The root is fixed once, either by :meth:`configure` or by the first call
    to :meth:`resolve`. Configuring a different root afterwards raises
    :class:`ConfigurationError`; repeating the same root is allowed.
    """

    def __init__(
        self,
        root: Optional[Path] = None,
        *,
        default_factory: Callable[[], Path] = _default_artifacts_root,
    ) -> None:
        self._lock = threading.Lock()
        self._root: Optional[Path] = None
        self._default_factory = default_factory
        if root is not None:
            self.configure(root)

    @property
    def configured(self) -> bool:
        with self._lock:
            return self._root is not None

    def configure(self, root: Path) -> Path:
        resolved = _absolute(root)
        with self._lock:
            if self._root is None:
                self._root = resolved
            elif self._root != resolved:
                raise ConfigurationError(
                    "Workspace root already configured as {0}; refusing to "
                    "switch to {1}.".format(self._root, resolved)
                )
            return self._root

    def resolve(self) -> Path:
        with self._lock:
            if self._root is None:
                self._root = _absolute(self._default_factory())
            return self._root


class ConversionWorkspace:
    """Directory-scoped staging area owned by exactly one conversion."""

    def __init__(
        self,
        root: Path,
        *,
        disposition: Disposition = Disposition.DELETE,
        parent: Optional["ConversionWorkspace"] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.root = _absolute(root)
        self.disposition = disposition
        self.source_path: Optional[Path] = None
        self._parent = parent
        self._artifacts: list[Path] = []
        self._lock = threading.Lock()
        self._released = False
        self._logger = get_logger(__name__, logger)

    @property
    def artifacts(self) -> tuple[Path, ...]:
        with self._lock:
            return tuple(self._artifacts)

    @property
    def released(self) -> bool:
        return self._released

    @property
    def top(self) -> "ConversionWorkspace":
        """Outermost workspace; nested entry workspaces live inside it."""

        current = self
        while current._parent is not None:
            current = current._parent
        return current

    def preserve(self) -> None:
        self.top.disposition = Disposition.PRESERVE

    def contains(self, path: Path) -> bool:
        return _absolute(path).is_relative_to(self.root)

    def relative(self, path: Path) -> str:
        """Path of ``path`` relative to the outermost workspace root."""

        return _absolute(path).relative_to(self.top.root).as_posix()

    def register(self, path: Path) -> Path:
        """Record ``path`` as an artifact; it must lie under the root."""

        resolved = _absolute(path)
        if not resolved.is_relative_to(self.root):
            raise StagingError(
                f"Artifact path {resolved} is outside workspace {self.root}."
            )
        self._ensure_active()
        with self._lock:
            if resolved not in self._artifacts:
                self._artifacts.append(resolved)
        if self._parent is not None:
            self._parent.register(resolved)
        return resolved

    def stage_stream(
        self, stream: BinaryIO, *, extension: Optional[str] = None
    ) -> Path:
        """Copy ``stream`` into the workspace as the source file."""

        target = self._target(f"source{extension or ''}")
        with target.open("wb") as handle:
            shutil.copyfileobj(stream, handle, _COPY_CHUNK)
        self.source_path = self.register(target)
        return self.source_path

    def stage_bytes(
        self, data: bytes, *, extension: Optional[str] = None
    ) -> Path:
        target = self._target(f"source{extension or ''}")
        target.write_bytes(data)
        self.source_path = self.register(target)
        return self.source_path

    def stage_file(self, source: Path) -> Path:
        target = self._target(f"source{source.suffix.lower()}")
        shutil.copyfile(source, target)
        self.source_path = self.register(target)
        return self.source_path

    def persist_bytes(self, relative: str, data: bytes) -> Path:
        target = self._target(relative)
        target.write_bytes(data)
        return self.register(target)

    def persist_text(
        self, relative: str, text: str, *, encoding: str = "utf-8"
    ) -> Path:
        target = self._target(relative)
        target.write_text(text, encoding=encoding)
        return self.register(target)

    def persist_file(self, source: Path, relative: str) -> Path:
        target = self._target(relative)
        shutil.copyfile(source, target)
        return self.register(target)

    def child(self, name: str) -> "ConversionWorkspace":
        """Create a nested workspace in its own random sub-directory.

        Nested workspaces are removed with their parent.
        """

        self._ensure_active()
        entries = self.root / "entries"
        entries.mkdir(parents=True, exist_ok=True)
        prefix = "".join(ch for ch in name if ch.isalnum())[:16] or "entry"
        path = Path(tempfile.mkdtemp(prefix=f"{prefix}-", dir=entries))
        return ConversionWorkspace(
            path,
            disposition=self.disposition,
            parent=self,
            logger=self._logger,
        )

    def release(self) -> bool:
        """Delete or keep the directory; only the first call has an effect."""

        with self._lock:
            if self._released:
                return False
            self._released = True

        if self._parent is not None:
            return True
        if self.disposition is Disposition.PRESERVE:
            self._logger.info(
                "Preserved conversion workspace",
                extra={"workspace": str(self.root)},
            )
            return True
        try:
            shutil.rmtree(self.root)
        except FileNotFoundError:
            pass
        except OSError as exc:
            self._logger.warning(
                "Failed to delete conversion workspace",
                extra={"workspace": str(self.root), "error": str(exc)},
            )
        return True

    def __enter__(self) -> "ConversionWorkspace":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    def _ensure_active(self) -> None:
        if self._released:
            raise StagingError(f"Workspace {self.root} was already released.")

    def _target(self, relative: str) -> Path:
        self._ensure_active()
        candidate = _absolute(self.root / relative)
        if not candidate.is_relative_to(self.root):
            raise StagingError(
                f"Artifact path {relative!r} escapes workspace {self.root}."
            )
        candidate.parent.mkdir(parents=True, exist_ok=True)
        return candidate


class WorkspaceManager:
    """Allocates one fresh workspace per conversion."""

    def __init__(
        self,
        resolver: Optional[RootResolver] = None,
        *,
        keep: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.resolver = resolver or RootResolver()
        self.keep = keep
        self._logger = get_logger(__name__, logger)

    def create(self, *, keep: Optional[bool] = None) -> ConversionWorkspace:
        base = self.resolver.resolve()
        try:
            base.mkdir(parents=True, exist_ok=True)
            workspace_mod.chmod_private(base)
            # mkdtemp picks a random name and creates the directory as 0700.
            root = Path(tempfile.mkdtemp(prefix="conv-", dir=base))
        except OSError as exc:
            raise StagingError(
                f"Unable to create conversion workspace under {base}"
            ) from exc
        preserve = self.keep if keep is None else keep
        disposition = Disposition.PRESERVE if preserve else Disposition.DELETE
        self._logger.debug(
            "Allocated conversion workspace",
            extra={"workspace": root, "disposition": disposition.value},
        )
        return ConversionWorkspace(
            root, disposition=disposition, logger=self._logger
        )


class ImagePersistor:
    """Writes in-memory image payloads into a workspace."""

    def __init__(
        self,
        workspace: ConversionWorkspace,
        *,
        prefix: str = "image",
        directory: str = "images",
    ) -> None:
        self.workspace = workspace
        self.prefix = prefix
        self.directory = directory

    def persist(self, image: ImageArtifact, index: int) -> Path:
        if image.file_path is not None and self.workspace.top.contains(
            image.file_path
        ):
            path = image.file_path
        else:
            name = f"{self.prefix}_{index:04d}{image_extension(image.content_type)}"
            path = self.workspace.persist_bytes(
                f"{self.directory}/{name}", image.read_bytes()
            )
            image.file_path = path
        image.metadata[MetadataKeys.ARTIFACT_PATH] = str(path)
        image.metadata[MetadataKeys.ARTIFACT_FILE_NAME] = path.name
        image.metadata[MetadataKeys.ARTIFACT_RELATIVE_PATH] = (
            self.workspace.relative(path)
        )
        return path

    def persist_all(self, images: Iterable[ImageArtifact]) -> int:
        """Persist every image not yet in the workspace; return the count."""

        written = 0
        for index, image in enumerate(images, start=1):
            if MetadataKeys.ARTIFACT_PATH in image.metadata:
                continue
            self.persist(image, index)
            written += 1
        return written

    def persist_collection(self, artifacts: ArtifactCollection) -> int:
        return self.persist_all(artifacts.images)


def image_extension(content_type: Optional[str]) -> str:
    if not content_type:
        return ".bin"
    return _IMAGE_EXTENSIONS.get(content_type.split(";", 1)[0].strip().lower(), ".bin")


def _absolute(path: Path) -> Path:
    expanded = Path(path).expanduser()
    try:
        return expanded.resolve()
    except OSError:
        return expanded.absolute()


__all__ = [
    "ConversionWorkspace",
    "Disposition",
    "ImagePersistor",
    "RootResolver",
    "WorkspaceManager",
    "image_extension",
]
