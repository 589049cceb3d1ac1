import asyncio
import logging
import time
from pathlib import Path

from consumables.application.ports import AttachmentStore
from consumables.domain.errors import StorageError

logger = logging.getLogger(__name__)


class LocalAttachmentStore(AttachmentStore):
    """Saves photos under ``<base>/<request_no>/`` and returns the relative path."""

    def __init__(self, base_path) -> None:
        self._base_path = Path(base_path)

    def folder_for(self, request_no: str) -> Path:
        return self._base_path / str(request_no)

    def _write(self, request_no: str, data: bytes, mime_type: str) -> str:
        folder = self.folder_for(request_no)
        extension = "png" if "png" in (mime_type or "image/jpeg") else "jpg"
        file_name = f"{request_no}_{int(time.time() * 1000)}.{extension}"
        try:
            folder.mkdir(parents=True, exist_ok=True)
            (folder / file_name).write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to save attachment for {request_no}: {e}")
            raise StorageError(f"첨부 파일을 저장할 수 없습니다: {request_no}") from e
        return f"{request_no}/{file_name}"

    async def save(self, request_no: str, data: bytes, mime_type: str) -> str:
        return await asyncio.to_thread(self._write, request_no, data, mime_type)
