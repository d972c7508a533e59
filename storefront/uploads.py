# storefront/uploads.py

"""
Product image uploads written to the public uploads directory.
"""
import logging
import os
import secrets
import time
from pathlib import Path

from fastapi import HTTPException, UploadFile, status

logger = logging.getLogger(__name__)

UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", "public/uploads"))
UPLOAD_URL_PATH = "/uploads"

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")
MAX_IMAGE_BYTES = 5 * 1024 * 1024  # 5 MiB

CHUNK_SIZE = 64 * 1024


def generate_filename(original_name: str) -> str:
    """product-image-<epoch ms>-<random hex suffix><original extension>"""
    suffix = f"{int(time.time() * 1000)}-{secrets.token_hex(8)}"
    ext = Path(original_name or "").suffix.lower()
    return f"product-image-{suffix}{ext}"


async def read_image(file: UploadFile) -> bytes:
    """
    Returns the upload's bytes after checking its type and size.
    Nothing is written to the uploads directory when either check fails.
    """
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unsupported file type. Only JPEG, PNG, GIF and WEBP images are allowed.",
        )
    chunks = []
    size = 0
    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > MAX_IMAGE_BYTES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="File too large. The maximum size is 5 MB.",
            )
        chunks.append(chunk)
    if size == 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")
    return b"".join(chunks)


async def save_image(file: UploadFile, upload_dir: Path) -> str:
    """Validates and stores the image; returns the generated filename."""
    content = await read_image(file)
    filename = generate_filename(file.filename)
    upload_dir.mkdir(parents=True, exist_ok=True)
    (upload_dir / filename).write_bytes(content)
    logger.info(f"Stored upload '{file.filename}' as '{filename}' ({len(content)} bytes).")
    return filename
