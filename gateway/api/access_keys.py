# =============================================================================
# Access Keys API — Owner-Scoped Key Management
# =============================================================================
#
# CRUD endpoints for the caller's own access keys. The caller is identified
# by the trusted user-id header (see deps.get_current_user_id); every
# operation is filtered by (key id, user id).
#
# DESIGN DECISION: The plaintext key is only returned ONCE at creation
# (POST /access-keys). After that, only the preview ("lr_…a1b2") is
# visible. This follows industry practice (GitHub tokens, Stripe keys).
#
# DESIGN DECISION: Revocation is a PATCH {"revoked": true}; DELETE truly
# removes the row.
# =============================================================================

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, Response

from gateway.api.deps import get_access_key_manager, get_current_user_id
from gateway.models.requests import CreateAccessKeyRequest, UpdateAccessKeyRequest
from gateway.models.responses import AccessKeyCreatedResponse, AccessKeyResponse
from gateway.services.access_keys import AccessKeyManager, AccessKeySafe

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Access Keys"])


def _to_key_response(key: AccessKeySafe) -> AccessKeyResponse:
    """Convert the manager's safe projection to the API response model."""
    return AccessKeyResponse(
        id=key.id,
        name=key.name,
        description=key.description,
        revoked=key.revoked,
        preview=key.preview,
        expires_at=key.expires_at,
        created_at=key.created_at,
        updated_at=key.updated_at,
        last_used_at=key.last_used_at,
    )


# ---------------------------------------------------------------------------
# GET /access-keys — List the caller's keys
# ---------------------------------------------------------------------------


@router.get(
    "/access-keys",
    response_model=list[AccessKeyResponse],
    summary="List your access keys",
)
async def list_access_keys(
    user_id: str = Depends(get_current_user_id),
    manager: AccessKeyManager = Depends(get_access_key_manager),
) -> list[AccessKeyResponse]:
    """Newest first; never includes the key, its fingerprint or hash."""
    keys = await manager.list_for_user(user_id)
    return [_to_key_response(k) for k in keys]


# ---------------------------------------------------------------------------
# POST /access-keys — Create a key
# ---------------------------------------------------------------------------


@router.post(
    "/access-keys",
    response_model=AccessKeyCreatedResponse,
    status_code=201,
    summary="Create a new access key",
    description=(
        "Generate a new access key. The key is only returned in this "
        "response — store it securely."
    ),
)
async def create_access_key(
    body: CreateAccessKeyRequest,
    user_id: str = Depends(get_current_user_id),
    manager: AccessKeyManager = Depends(get_access_key_manager),
) -> AccessKeyCreatedResponse:
    created = await manager.create(
        user_id, name=body.name, description=body.description,
    )
    return AccessKeyCreatedResponse(
        id=created.id,
        key=created.key,
        created_at=created.created_at,
        name=created.name,
        description=created.description,
    )


# ---------------------------------------------------------------------------
# PATCH /access-keys/{key_id} — Update / revoke a key
# ---------------------------------------------------------------------------


@router.patch(
    "/access-keys/{key_id}",
    response_model=AccessKeyResponse,
    summary="Update an access key",
    description=(
        "Change name, description, revoked or expiresAt. Only fields "
        "present in the body are applied."
    ),
)
async def update_access_key(
    key_id: uuid.UUID,
    body: UpdateAccessKeyRequest,
    user_id: str = Depends(get_current_user_id),
    manager: AccessKeyManager = Depends(get_access_key_manager),
) -> AccessKeyResponse:
    key = await manager.update(str(key_id), user_id, body.to_patch())
    return _to_key_response(key)


# ---------------------------------------------------------------------------
# DELETE /access-keys/{key_id} — Delete a key
# ---------------------------------------------------------------------------


@router.delete(
    "/access-keys/{key_id}",
    status_code=204,
    summary="Delete an access key",
)
async def delete_access_key(
    key_id: uuid.UUID,
    user_id: str = Depends(get_current_user_id),
    manager: AccessKeyManager = Depends(get_access_key_manager),
) -> Response:
    await manager.delete(str(key_id), user_id)
    return Response(status_code=204)
