"""
Extension host query endpoints.

This module defines a FastAPI APIRouter that is mounted at /extensions in
host_api.py. It exposes listing, status, reload, type listing, resolution
and config-form rendering/validation over HTTP.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from extensions.config_form import apply_defaults, render_form, validate_config
from extensions.host import ExtensionHost
from extensions.manifest import EntryKind
from extensions.resolution import Fallback

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/extensions", tags=["extensions"])

_host: Optional[ExtensionHost] = None


# ------------------------------------------------------------------
# Pydantic models
# ------------------------------------------------------------------

class ReloadRequest(BaseModel):
    extension_id: Optional[str] = None


class ValidateRequest(BaseModel):
    config: Dict[str, Any] = {}


# ------------------------------------------------------------------
# Host dependency
# ------------------------------------------------------------------

def set_host(host: Optional[ExtensionHost]) -> None:
    global _host
    _host = host


def get_host() -> ExtensionHost:
    if _host is None:
        raise HTTPException(status_code=503, detail="Extension host not started")
    return _host


def _kind_or_404(kind: str) -> EntryKind:
    try:
        return EntryKind(kind)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown kind '{kind}'")


def _entry_or_404(host: ExtensionHost, kind: str, type_id: str):
    target = host.resolve(_kind_or_404(kind), type_id)
    if isinstance(target, Fallback):
        raise HTTPException(status_code=404, detail=target.to_dict())
    return target


# ------------------------------------------------------------------
# Routes
# ------------------------------------------------------------------

@router.get("")
async def list_extensions(host: ExtensionHost = Depends(get_host)):
    """List discovered extensions with their load state."""
    items = []
    for descriptor in host.list():
        data = descriptor.to_dict()
        state = host.state(descriptor.id)
        data["status"] = "disabled" if descriptor.id in host.disabled else (
            state.status.value if state is not None else "pending"
        )
        data["reason"] = state.reason if state is not None else None
        items.append(data)
    return {"extensions": items, "count": len(items)}


@router.get("/status")
async def host_status(host: ExtensionHost = Depends(get_host)):
    return host.status()


@router.post("/reload")
async def reload_extensions(request: ReloadRequest, host: ExtensionHost = Depends(get_host)):
    """Rescan roots and reload one extension or all of them."""
    count = await host.reload(request.extension_id)
    logger.info(f"Reload requested ({request.extension_id or 'all'}): {count} loaded")
    return {"count": count}


@router.get("/types/{kind}")
async def list_types(kind: str, host: ExtensionHost = Depends(get_host)):
    registry = host.registries.for_kind(_kind_or_404(kind))
    return {"kind": kind, "types": [e.to_dict() for e in registry.get_all()]}


@router.get("/resolve/{kind}/{type_id}")
async def resolve_type(kind: str, type_id: str, host: ExtensionHost = Depends(get_host)):
    """Resolve a type id; unresolvable types come back as a fallback, not an error."""
    target = host.resolve(kind, type_id)
    if isinstance(target, Fallback):
        return {"resolved": False, "fallback": target.to_dict(), "placeholder": target.to_placeholder()}
    return {"resolved": True, "entry": target.to_dict()}


@router.get("/types/{kind}/{type_id}/form")
async def render_type_form(kind: str, type_id: str, host: ExtensionHost = Depends(get_host)):
    entry = _entry_or_404(host, kind, type_id)
    fields = entry.config_schema or ()
    config = apply_defaults(fields, {}, entry.default_config)
    return {
        "kind": kind,
        "type_id": type_id,
        "controls": [rendered.control.to_dict() for rendered in render_form(fields, config)],
    }


@router.post("/types/{kind}/{type_id}/validate")
async def validate_type_config(
    kind: str,
    type_id: str,
    request: ValidateRequest,
    host: ExtensionHost = Depends(get_host),
):
    entry = _entry_or_404(host, kind, type_id)
    errors = validate_config(entry.config_schema or (), request.config)
    return {"valid": not errors, "errors": errors}


@router.get("/{extension_id}")
async def get_extension(extension_id: str, host: ExtensionHost = Depends(get_host)):
    descriptor = host.get(extension_id)
    if descriptor is None:
        raise HTTPException(status_code=404, detail=f"Extension '{extension_id}' not found")
    state = host.state(extension_id)
    return {
        "extension": descriptor.to_dict(),
        "state": state.to_dict() if state is not None else None,
        "disabled": extension_id in host.disabled,
        "stylesheet": host.loader.stylesheet(extension_id),
    }
