"""Shared FastAPI dependencies."""

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from restock_service.config import Settings, get_settings
from restock_service.domain.models import Identity
from restock_service.errors import AuthorizationError
from restock_service.services.authorization import require_privileged
from restock_service.services.pipeline import RestockPipeline, get_pipeline


def current_identity(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> Identity | None:
    """
    Resolve the caller from the admin API key header.

    Requests without a matching key are anonymous; privileged operations
    reject them downstream.
    """
    provided = request.headers.get(settings.api_key_header)
    if settings.admin_api_key and provided and secrets.compare_digest(
        provided, settings.admin_api_key
    ):
        return Identity(subject="admin-api-key", role="admin")
    return None


PipelineDep = Annotated[RestockPipeline, Depends(get_pipeline)]
IdentityDep = Annotated[Identity | None, Depends(current_identity)]


def require_admin(
    identity: IdentityDep,
    settings: Annotated[Settings, Depends(get_settings)],
) -> Identity:
    """403 unless the caller holds a privileged role."""
    try:
        return require_privileged(identity, settings.privileged_roles)
    except AuthorizationError as e:
        raise HTTPException(status_code=403, detail=e.message) from e


AdminDep = Annotated[Identity, Depends(require_admin)]
