import logging
from typing import Optional, Union

import requests

from carelink import config

logger = logging.getLogger(__name__)


class UploadError(RuntimeError):
    pass


def upload_image(image: Union[str, bytes], folder: str = "carelink", public_id: Optional[str] = None) -> dict:
    """Unsigned upload to Cloudinary. ``image`` is a file path or raw bytes."""
    if not config.CLOUDINARY_CLOUD_NAME:
        raise UploadError("Cloudinary cloud name not configured")

    data = {
        "upload_preset": config.CLOUDINARY_UPLOAD_PRESET,
        "folder": folder,
    }
    if public_id:
        data["public_id"] = public_id

    url = f"https://api.cloudinary.com/v1_1/{config.CLOUDINARY_CLOUD_NAME}/image/upload"
    try:
        if isinstance(image, bytes):
            response = requests.post(url, data=data, files={"file": ("upload.jpg", image, "image/jpeg")}, timeout=60)
        else:
            with open(image, "rb") as fh:
                response = requests.post(url, data=data, files={"file": fh}, timeout=60)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        logger.error(f"Cloudinary upload error: {e}")
        raise UploadError(f"Failed to upload image: {e}") from e

    result = response.json()
    return {
        "url": result["url"],
        "public_id": result["public_id"],
        "secure_url": result["secure_url"],
    }

def get_shareable_link(public_id: str) -> str:
    if not config.CLOUDINARY_CLOUD_NAME:
        return ""
    return f"https://res.cloudinary.com/{config.CLOUDINARY_CLOUD_NAME}/image/upload/{public_id}.jpg"
