"""Signed download links for stored files."""

import logging
from pathlib import PurePosixPath

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from conformidade_platform.services import storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


@router.get("/signed/{token}")
async def download_signed(token: str):
    relative_path = storage.verify_signed_token(token)
    if not relative_path:
        raise HTTPException(status_code=403, detail="Link inválido ou expirado")
    try:
        path = storage.resolve_path(relative_path)
    except storage.StorageError:
        raise HTTPException(status_code=403, detail="Link inválido ou expirado")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Arquivo não encontrado")
    filename = PurePosixPath(relative_path).name
    media_type = "application/pdf" if filename.lower().endswith(".pdf") else "application/octet-stream"
    return FileResponse(path, media_type=media_type, filename=filename)
