# clypse/routers/files.py
# FastAPI router for file sharing by short code

from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import Response

from clypse.middleware.error_handler import PayloadTooLargeError
from clypse.schemas.files import SharedItemOut
from clypse.services.file_service import FileShareService
from clypse.routers.deps import get_file_service


router = APIRouter(tags=["Files"])

UPLOAD_CHUNK_SIZE = 1024 * 1024


async def read_upload(file: UploadFile, limit: int) -> bytes:
    """Read the upload in chunks, giving up as soon as it passes `limit` bytes."""
    if file.size is not None and file.size > limit:
        raise PayloadTooLargeError(file.size, limit)
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise PayloadTooLargeError(total, limit)
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/files", response_model=SharedItemOut, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    service: FileShareService = Depends(get_file_service),
) -> SharedItemOut:
    """Store the uploaded file and return its code."""
    data = await read_upload(file, service.max_file_size)
    item = await service.upload(file.filename or "", data, file.content_type)
    return SharedItemOut.from_item(item)


@router.get("/files", response_model=list[SharedItemOut])
async def list_files(service: FileShareService = Depends(get_file_service)) -> list[SharedItemOut]:
    return [SharedItemOut.from_item(item) for item in await service.list_files()]


@router.get("/files/{code}", response_model=SharedItemOut)
async def get_file(code: str, service: FileShareService = Depends(get_file_service)) -> SharedItemOut:
    return SharedItemOut.from_item(await service.get(code))


@router.get("/files/{code}/download")
async def download_file(code: str, service: FileShareService = Depends(get_file_service)) -> Response:
    item, data = await service.retrieve(code)
    disposition = f"attachment; filename*=UTF-8''{quote(item.file_name)}"
    return Response(
        content=data,
        media_type=item.content_type,
        headers={"Content-Disposition": disposition},
    )
