"""
Submission file storage.

Uploaded project files are written under ``UPLOAD_DIR/submissions/<project>/``
with a unique stored name; the database row only keeps the file metadata.
"""

import os
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
import aiofiles.os

from cdc_admin.core.config import settings
from cdc_admin.core.exceptions import ResourceNotFoundError, StorageError, ValidationError
from cdc_admin.core.logging_config import logger

SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")
CHUNK_SIZE = 1024 * 1024


class SubmissionStorage:
    """Filesystem blob sink for submission files"""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.UPLOAD_DIR) / "submissions"

    def validate(self, filename: str, size: Optional[int] = None) -> None:
        extension = Path(filename).suffix.lower().lstrip(".")
        if settings.ALLOWED_EXTENSIONS and extension not in settings.ALLOWED_EXTENSIONS:
            raise ValidationError(f"File type .{extension} is not allowed", field="files")
        if size is not None and size > settings.MAX_UPLOAD_SIZE:
            raise ValidationError(
                f"File {filename} exceeds the maximum size of {settings.MAX_UPLOAD_SIZE // (1024 * 1024)}MB",
                field="files",
            )

    async def save(self, project_id: str, upload) -> Dict[str, Any]:
        """Stream an UploadFile to disk and return its metadata record"""
        original_name = upload.filename or "file"
        self.validate(original_name)

        stored_name = f"{uuid.uuid4().hex}_{SAFE_NAME.sub('_', original_name)}"
        directory = self.root / project_id
        path = directory / stored_name

        size = 0
        try:
            await aiofiles.os.makedirs(directory, exist_ok=True)
            async with aiofiles.open(path, "wb") as out:
                while chunk := await upload.read(CHUNK_SIZE):
                    size += len(chunk)
                    if size > settings.MAX_UPLOAD_SIZE:
                        break
                    await out.write(chunk)
        except OSError as e:
            logger.error(f"[Storage] Failed to write {path}: {e}")
            raise StorageError(f"Could not store file {original_name}") from e

        if size > settings.MAX_UPLOAD_SIZE:
            await self.remove([{"path": str(path)}])
            self.validate(original_name, size)

        return {
            "original_name": original_name,
            "file_name": stored_name,
            "path": str(path),
            "size": size,
            "type": upload.content_type or "application/octet-stream",
            "uploaded_at": datetime.utcnow().isoformat(),
        }

    async def save_all(self, project_id: str, uploads: List[Any]) -> List[Dict[str, Any]]:
        if len(uploads) > settings.MAX_FILES_PER_SUBMISSION:
            raise ValidationError(
                f"A submission can have at most {settings.MAX_FILES_PER_SUBMISSION} files", field="files"
            )
        saved: List[Dict[str, Any]] = []
        try:
            for upload in uploads:
                saved.append(await self.save(project_id, upload))
        except (ValidationError, StorageError):
            await self.remove(saved)
            raise
        return saved

    async def remove(self, files: List[Dict[str, Any]]) -> None:
        for record in files:
            path = record.get("path")
            if path and os.path.exists(path):
                try:
                    await aiofiles.os.remove(path)
                except OSError as e:
                    logger.warning(f"[Storage] Could not remove {path}: {e}")

    def resolve(self, record: Dict[str, Any]) -> Path:
        """Path of a stored file; it must live under the storage root"""
        path = Path(record["path"]).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError("Stored file path is outside the upload directory")
        if not path.exists():
            raise ResourceNotFoundError("File", record.get("file_name"))
        return path


def get_submission_storage() -> SubmissionStorage:
    """FastAPI dependency returning the blob sink"""
    return SubmissionStorage()
