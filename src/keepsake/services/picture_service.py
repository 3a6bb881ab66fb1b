# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import hashlib
import logging
import re
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from keepsake.auth.gate import AccessGate, TimeSource
from keepsake.auth.tokens import Principal
from keepsake.errors import AccessDenied, InfrastructureError, PathTraversal, PictureNotFound
from keepsake.infra.store import Image, SQLiteStore
from keepsake.metrics import Metrics

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 3
MAX_LIMIT = 100

_EXT_RE = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


@dataclass(frozen=True)
class IncomingFile:
    filename: str
    content_type: str
    data: bytes


@dataclass(frozen=True)
class UploadFailure:
    """One rejected file. ``kind`` is one of UPLOAD_FAILURE_STATUS's keys."""

    kind: str
    filename: str
    message: str


# Worst failure wins when a batch mixes kinds.
UPLOAD_FAILURE_STATUS = {"validation": 400, "file": 400, "other": 500}


@dataclass
class UploadResult:
    stored: List[str] = field(default_factory=list)
    failures: List[UploadFailure] = field(default_factory=list)

    @property
    def status_code(self) -> int:
        if not self.failures:
            return 200
        return max(UPLOAD_FAILURE_STATUS[f.kind] for f in self.failures)


def parse_pagination(limit: Optional[str], offset: Optional[str]) -> Tuple[int, int]:
    """Parse ``limit``/``offset`` query values, falling back to the defaults."""
    lim, off = DEFAULT_LIMIT, 0

    if limit is not None:
        try:
            v = int(limit)
        except ValueError:
            v = 0
        if 0 < v <= MAX_LIMIT:
            lim = v
        else:
            logger.warning("invalid limit provided, using default (limit=%r)", limit)

    if offset is not None:
        try:
            v = int(offset)
        except ValueError:
            v = -1
        if v >= 0:
            off = v
        else:
            logger.warning("invalid offset provided, using default (offset=%r)", offset)

    return lim, off


def safe_file_name(original: str) -> str:
    """Random-looking stored name that keeps a plausible extension."""
    ext = Path(original or "").suffix
    ext = ext.lower() if _EXT_RE.match(ext) else ""
    h = hashlib.sha256(f"{original}{time.time_ns()}{secrets.token_hex(8)}".encode("utf-8"))
    return h.hexdigest() + ext


class PictureService:
    def __init__(
        self,
        *,
        base_path: Path,
        store: SQLiteStore,
        gate: AccessGate,
        metrics: Metrics,
        clock: TimeSource = datetime.now,
        now: Callable[[], float] = time.time,
    ):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.store = store
        self.gate = gate
        self.metrics = metrics
        self.clock = clock
        self.now = now

    # ------------------ reads ------------------

    def list_pictures(self, limit: Optional[str] = None, offset: Optional[str] = None) -> List[Image]:
        lim, off = parse_pagination(limit, offset)
        try:
            images = self.store.get_images(lim, off)
        except InfrastructureError as e:
            self.metrics.observe("pictures", e)
            raise
        self.metrics.observe("pictures")
        return images

    def total(self) -> int:
        try:
            n = self.store.count_images()
        except InfrastructureError as e:
            self.metrics.observe("pictures_total", e)
            raise
        self.metrics.observe("pictures_total")
        return n

    def resolve(self, name: str) -> Path:
        """Return the path of a stored picture the caller may view right now."""
        try:
            path = self._resolve(name)
        except Exception as e:
            self.metrics.observe("picture", e)
            raise
        self.metrics.observe("picture")
        return path

    def _resolve(self, name: str) -> Path:
        if not self.gate.is_visible_now(self.clock):
            raise AccessDenied("access denied")

        name = name or ""
        if "\x00" in name:
            raise PathTraversal("invalid file path")
        try:
            target = (self.base_path / name).resolve()
            is_file = target.is_file()
        except (ValueError, OSError) as e:
            raise PathTraversal("invalid file path") from e
        if target == self.base_path or self.base_path not in target.parents:
            raise PathTraversal("invalid file path")
        if not is_file:
            raise PictureNotFound("picture not found")
        return target

    # ------------------ upload ------------------

    def _save(self, incoming: IncomingFile) -> str:
        name = safe_file_name(incoming.filename)
        # "x" fails instead of overwriting, so concurrent uploads need no lock.
        with open(self.base_path / name, "xb") as out:
            out.write(incoming.data)
        return name

    def upload(self, files: Iterable[IncomingFile], principal: Principal) -> UploadResult:
        result = UploadResult()
        files = list(files)
        if not files:
            result.failures.append(UploadFailure("validation", "", "no pictures uploaded"))

        for f in files:
            if not (f.content_type or "").startswith("image/"):
                result.failures.append(UploadFailure("validation", f.filename, "invalid file type"))
                continue
            try:
                name = self._save(f)
            except OSError as e:
                logger.error("failed to save uploaded file: %s", type(e).__name__)
                result.failures.append(UploadFailure("file", f.filename, "failed to save the file"))
                continue
            result.stored.append(name)

        created_at = int(self.now())
        recorded = []
        for name in result.stored:
            try:
                self.store.create_image(principal.user_id, name, created_at)
            except InfrastructureError:
                logger.exception("failed to save image to database (name=%s)", name)
                (self.base_path / name).unlink(missing_ok=True)
                result.failures.append(UploadFailure("other", name, "internal server error"))
                continue
            recorded.append(name)
        result.stored = recorded

        if result.failures:
            worst = max(result.failures, key=lambda f: UPLOAD_FAILURE_STATUS[f.kind])
            self.metrics.inc("upload", worst.kind)
            logger.warning("%d file(s) failed to upload", len(result.failures))
        else:
            self.metrics.observe("upload")
        return result
