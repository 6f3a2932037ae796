from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.api.errors import SERVICE_ERRORS, to_http
from app.db.session import get_db
from app.models.profile import Profile
from app.services.storage_service import (
    PROFILE_BUCKET,
    create_signed_url,
    decode_base64_image,
    get_storage_client,
    resolve_signed_token,
    upload_image,
)

router = APIRouter(tags=["files"])

_CONTENT_TYPES = {"jpg": "image/jpeg", "jpeg": "image/jpeg", "png": "image/png", "webp": "image/webp"}


class ProfilePictureIn(BaseModel):
    image: str
    contentType: str = "image/jpeg"


@router.post("/files")
def upload_profile_picture(body: ProfilePictureIn, db: Session = Depends(get_db),
                           me: Profile = Depends(get_current_user)):
    try:
        content = decode_base64_image(body.image, "image")
    except SERVICE_ERRORS as e:
        raise to_http(e)
    key = upload_image(get_storage_client(), bucket=PROFILE_BUCKET, owner_id=me.id, kind="pfp",
                       content=content, content_type=body.contentType)
    me.pfp_id = key
    db.commit()
    return {"key": key, "url": create_signed_url(key)}


@router.get("/files/{token}")
def download(token: str):
    try:
        key = resolve_signed_token(token)
    except ValueError as e:
        raise HTTPException(status_code=403, detail=str(e))
    storage = get_storage_client()
    if not storage.exists(key):
        raise HTTPException(status_code=404, detail="file not found")
    ext = key.rsplit(".", 1)[-1].lower()
    return Response(content=storage.get_bytes(key), media_type=_CONTENT_TYPES.get(ext, "application/octet-stream"))
