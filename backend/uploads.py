import os
from typing import Optional, Tuple
from uuid import uuid4

from werkzeug.utils import secure_filename

ALLOWED_IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}


class ImagePayload:
    """Uploaded bytes plus the client's file name.

    ``from_upload`` is the one place that knows how each upload shape is read.
    It accepts werkzeug ``FileStorage`` objects, any object with ``read()``,
    or raw bytes.
    """

    def __init__(self, filename: str, content: bytes):
        self.filename = filename
        self.content = content

    @classmethod
    def from_upload(cls, upload, filename: Optional[str] = None) -> Optional["ImagePayload"]:
        if upload is None:
            return None

        name = filename or getattr(upload, "filename", "") or ""
        if isinstance(upload, (bytes, bytearray)):
            content = bytes(upload)
        elif hasattr(upload, "read"):
            content = upload.read()
        else:
            raise TypeError(f"Unsupported upload type: {type(upload).__name__}")

        if not name and not content:
            return None
        return cls(name, content)


def allowed_image_extension(filename: str) -> bool:
    extension = os.path.splitext(filename)[1].lower().lstrip(".")
    if not extension:
        return False
    return extension in ALLOWED_IMAGE_EXTENSIONS


class ImageStore:
    def __init__(self, folder: str):
        self.folder = folder
        os.makedirs(folder, exist_ok=True)

    def save(self, payload: Optional[ImagePayload]) -> Tuple[Optional[str], Optional[str]]:
        """Write the image under a random name; returns ``(filename, error)``."""
        if not payload or not payload.filename:
            return None, "An image file is required."

        original_filename = secure_filename(payload.filename)
        if not original_filename:
            return None, "Please choose a valid file name."

        if not allowed_image_extension(original_filename):
            return (
                None,
                "Unsupported image format. Upload PNG, JPG, JPEG, GIF, or WEBP files.",
            )

        if not payload.content:
            return None, "The uploaded image is empty."

        extension = os.path.splitext(original_filename)[1].lower()
        unique_filename = f"{uuid4().hex}{extension}"
        destination = os.path.join(self.folder, unique_filename)

        try:
            with open(destination, "wb") as handle:
                handle.write(payload.content)
        except OSError:
            return None, "We could not store the uploaded image. Please try again."

        return unique_filename, None

    def remove(self, filename: Optional[str]):
        if not filename:
            return
        target = os.path.join(self.folder, os.path.basename(str(filename)))
        try:
            os.remove(target)
        except OSError:
            return
