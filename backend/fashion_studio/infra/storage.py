from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from fastapi import HTTPException, UploadFile

from fashion_studio.core.errors import AppError
from fashion_studio.core.paths import BUCKETS

logger = logging.getLogger(__name__)

_SUFFIX_BY_TYPE = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


@dataclass
class StoredObject:
    bucket: str
    path: str
    url: str


def suffix_for_content_type(content_type: str | None) -> str:
    return _SUFFIX_BY_TYPE.get((content_type or "").lower(), ".jpg")


def read_upload_or_413(upload: UploadFile, max_bytes: int) -> bytes:
    if not (upload.content_type or "").startswith("image/"):
        raise HTTPException(
            status_code=415,
            detail={"error_code": "INVALID_FILE_TYPE", "message": "Uploaded file must be an image"},
        )

    data = upload.file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail={
                "error_code": "FILE_TOO_LARGE",
                "message": f"File exceeds max size of {max_bytes} bytes",
            },
        )
    if not data:
        raise HTTPException(
            status_code=400,
            detail={"error_code": "EMPTY_FILE", "message": "Uploaded file is empty"},
        )
    return data


class LocalStorage:
    """
    Bucketed object storage on the local filesystem. The API mounts `root` at /storage,
    so every stored object has a public URL the generation provider can fetch.
    """

    def __init__(self, root: Path, public_base_url: str) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def _bucket_dir(self, bucket: str) -> Path:
        if bucket not in BUCKETS:
            raise AppError("UNKNOWN_BUCKET", f"Unknown storage bucket: {bucket}")
        path = self.root / bucket
        path.mkdir(parents=True, exist_ok=True)
        return path

    def public_url(self, bucket: str, name: str) -> str:
        return f"{self.public_base_url}/storage/{bucket}/{name}"

    def save(self, bucket: str, data: bytes, suffix: str = ".jpg") -> StoredObject:
        name = f"{uuid4()}{suffix}"
        out_path = self._bucket_dir(bucket) / name
        out_path.write_bytes(data)
        logger.info("stored %s bytes in %s/%s", len(data), bucket, name)
        return StoredObject(bucket=bucket, path=f"{bucket}/{name}", url=self.public_url(bucket, name))

    def delete(self, bucket: str, name: str) -> bool:
        p = self._bucket_dir(bucket) / Path(name).name
        if not p.exists():
            return False
        p.unlink()
        return True
