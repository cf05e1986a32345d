from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

router = APIRouter(prefix="/hooks", tags=["hooks"])


def _offloader(request: Request):
    return request.app.state.offloader


def _metadata(payload: dict) -> dict:
    metadata = payload.get("metadata")
    if not isinstance(metadata, dict):
        raise HTTPException(400, "metadata must be an object")
    sizes = metadata.get("sizes")
    if sizes is not None and not isinstance(sizes, dict):
        raise HTTPException(400, "metadata.sizes must be an object")
    return metadata


@router.post("/upload")
def uploaded(payload: dict, request: Request):
    if not isinstance(payload.get("file"), str):
        raise HTTPException(400, "file is required")
    upload = _offloader(request).handle_upload(payload, request.state.context.tenant)
    return {"ok": True, "upload": upload}


@router.post("/metadata-generated")
def metadata_generated(payload: dict, request: Request):
    metadata = _metadata(payload)
    context = payload.get("context") or "create"
    metadata = _offloader(request).offload_metadata(metadata, request.state.context.tenant, context=context)
    return {"ok": True, "metadata": metadata}


@router.post("/metadata-updated")
def metadata_updated(payload: dict, request: Request):
    metadata = _offloader(request).update_metadata(_metadata(payload), request.state.context.tenant)
    return {"ok": True, "metadata": metadata}


@router.post("/attachment-deleted")
def attachment_deleted(payload: dict, request: Request):
    purged = _offloader(request).delete(request.state.context.tenant, _metadata(payload))
    return {"ok": True, "purged": purged}


@router.post("/image-saved")
def image_saved(payload: dict, request: Request):
    local_file = payload.get("file")
    if not isinstance(local_file, str) or not local_file:
        raise HTTPException(400, "file is required")
    url = _offloader(request).save_edited_image(local_file, request.state.context.tenant)
    return {"ok": url is not None, "url": url}


@router.post("/upload-dir")
def upload_dir(payload: dict, request: Request):
    info = _offloader(request).upload_dir(payload, request.state.rewriter)
    return {"ok": True, "upload_dir": info}
