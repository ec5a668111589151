"""
Secure upload gateway endpoints.

1. POST /storage/presigned-url - Get a presigned POST policy for one object
2. DELETE /storage/delete      - Delete an object the caller owns

Browsers upload straight to the object store with the returned form
fields; the backend never sees the bytes. Both endpoints require a
Firebase JWT, are rate limited per user, and check that the userId in the
body is the authenticated caller.
"""
from fastapi import APIRouter, Depends

from app.auth.dependencies import AuthenticatedUser, get_current_user
from app.dependencies import get_gateway
from app.schemas.storage import (
    DeleteRequest,
    DeleteResponse,
    PresignedUrlRequest,
    PresignedUrlResponse,
)
from app.storage.gateway import SecureUploadGateway

router = APIRouter()


@router.post("/presigned-url", response_model=PresignedUrlResponse)
async def create_presigned_url(
    request: PresignedUrlRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    gateway: SecureUploadGateway = Depends(get_gateway)
):
    """
    Issue a presigned POST policy.

    Returns:
        url: Form action (bucket endpoint)
        fields: Form fields to send along with the file
        publicUrl: Where the object is served from once uploaded

    Errors: 400 invalid type/extension, 401, 403 userId mismatch, 429, 500
    """
    post = await gateway.issue_upload_credential(current_user.uid, request)
    return post.to_dict()


@router.delete("/delete", response_model=DeleteResponse)
async def delete_file(
    request: DeleteRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    gateway: SecureUploadGateway = Depends(get_gateway)
):
    """
    Delete an object after checking its stored owner metadata.

    Errors: 400, 401, 403 not the owner, 404 object missing, 429, 500
    """
    return await gateway.delete_object(current_user.uid, request)
