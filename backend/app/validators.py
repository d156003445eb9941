import os
from fastapi import HTTPException, Request, UploadFile


MAX_UPLOAD_MB = int(os.environ.get("MAX_UPLOAD_MB", "5"))


async def enforce_max_upload_size(request: Request) -> None:
    cl = request.headers.get("content-length")
    if not cl:
        return
    try:
        size = int(cl)
    except ValueError:
        return
    # Multipart framing adds a little on top of the file itself
    if size > MAX_UPLOAD_MB * 1024 * 1024 + 64 * 1024:
        raise HTTPException(status_code=413, detail="Upload too large")


async def read_image_upload(upload: UploadFile, max_mb: int = MAX_UPLOAD_MB) -> bytes:
    if not (upload.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="File must be an image")
    data = await upload.read()
    if len(data) > max_mb * 1024 * 1024:
        raise HTTPException(status_code=400, detail=f"File size must be less than {max_mb}MB")
    return data


def upload_extension(upload: UploadFile, default: str = ".png") -> str:
    ext = os.path.splitext(upload.filename or "")[1].lower()
    return ext if ext and ext[1:].isalnum() else default
