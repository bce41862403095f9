"""Document proxy: streams stored files to callers holding a capability."""
from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from app.auth import User
from app.database import get_session
from app.dependencies import get_now, get_storage
from app.document_proxy import check_document_access
from app.errors import DocumentNotFound
from app.routers.auth import get_optional_user
from app.storage import LocalObjectStorage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Documents"])


@router.get("/documents")
def proxy_document(
    bucket: str | None = Query(None),
    path: str | None = Query(None),
    token: str | None = Query(None),
    db: Session = Depends(get_session),
    user: User | None = Depends(get_optional_user),
    storage: LocalObjectStorage = Depends(get_storage),
    now: datetime = Depends(get_now),
):
    if not bucket or not path:
        return JSONResponse(status_code=400, content={"error": "Missing bucket or path"})

    decision = check_document_access(db, bucket, path, token=token, user=user, now=now)
    if not decision.granted:
        return JSONResponse(
            status_code=403,
            content={"error": "Forbidden - You do not have access to this document"},
        )

    try:
        stored = storage.download(bucket, path)
    except DocumentNotFound:
        logger.error("[PROXY] Download error for %s/%s", bucket, path)
        return JSONResponse(status_code=404, content={"error": "File not found"})

    return Response(
        content=stored.content,
        media_type=stored.content_type,
        headers={
            "Cache-Control": "private, max-age=3600",
            "Content-Disposition": f'inline; filename="{stored.filename}"',
        },
    )
