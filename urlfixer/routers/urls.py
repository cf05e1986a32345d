from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from urlfixer.services.rewriter import EXTENSION_POINTS

router = APIRouter(prefix="/urls", tags=["urls"])


@router.get("/context")
def request_context(request: Request):
    context = request.state.context
    tenant = context.tenant
    return {
        "ok": True,
        "tenant": {
            "tenant_id": tenant.tenant_id,
            "network_id": tenant.network_id,
            "domain": tenant.domain,
            "path": tenant.path,
        },
        "subdomain": context.subdomain,
        "cookie_domain": context.cookie_domain,
        "admin_cookie_path": context.admin_cookie_path,
    }


@router.post("/rewrite")
def rewrite_urls(payload: dict, request: Request):
    kind = payload.get("kind") or "home"
    if kind not in EXTENSION_POINTS:
        raise HTTPException(400, f"Unknown extension point: {kind}")
    if "value" not in payload:
        raise HTTPException(400, "Missing value")
    rewriter = request.state.rewriter
    return {"ok": True, "kind": kind, "value": rewriter.filter(kind, payload["value"])}
