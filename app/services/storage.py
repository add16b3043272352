"""
Evidence file handling: upload checks, content hashing and local storage.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from fastapi import UploadFile

from app.core.config import settings
from app.core.exceptions import ValidationFailed

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/heic",
    "image/heif",
}


def sha256_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@dataclass
class EvidenceFile:
    """An uploaded file already read into memory."""

    filename: str
    content_type: str
    data: bytes
    sha256: str = field(init=False)

    def __post_init__(self) -> None:
        self.sha256 = sha256_digest(self.data)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class StoredFile:
    evidence: EvidenceFile
    path: str


async def read_uploads(files: list[UploadFile] | None) -> list[EvidenceFile]:
    """Read and vet multipart uploads against the type/size/count limits."""
    files = files or []
    if len(files) > settings.MAX_UPLOAD_FILES:
        raise ValidationFailed(f"Too many files. Maximum is {settings.MAX_UPLOAD_FILES}.")

    evidence: list[EvidenceFile] = []
    for upload in files:
        content_type = (upload.content_type or "").lower()
        if content_type not in ALLOWED_MIME_TYPES:
            raise ValidationFailed(
                f"File type {content_type or 'unknown'} is not allowed. Accepted: JPEG, PNG, WebP, HEIC"
            )
        data = await upload.read()
        if len(data) > settings.MAX_UPLOAD_BYTES:
            max_mb = settings.MAX_UPLOAD_BYTES // (1024 * 1024)
            raise ValidationFailed(f"File too large. Maximum size is {max_mb}MB.")
        evidence.append(
            EvidenceFile(
                filename=upload.filename or "upload",
                content_type=content_type,
                data=data,
            )
        )
    return evidence


class LocalFileStorage:
    """Stores files under a root directory with collision-free names."""

    def __init__(self, root: str | Path = settings.STORAGE_LOCAL_PATH) -> None:
        self.root = Path(root)

    async def save(self, evidence: EvidenceFile) -> StoredFile:
        ext = Path(evidence.filename).suffix.lower()
        target = self.root / f"{uuid.uuid4()}{ext}"
        await asyncio.to_thread(self._write, target, evidence.data)
        return StoredFile(evidence=evidence, path=str(target))

    async def save_all(self, files: list[EvidenceFile]) -> list[StoredFile]:
        return [await self.save(f) for f in files]

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as buffer:
            buffer.write(data)
