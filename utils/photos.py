"""
utils/photos.py — Record photo uploads.

Photos are stored inline on the record as data URIs
(data:image/jpeg;base64,...), so the layout document stays self-contained.
"""

import base64
import mimetypes

from werkzeug.utils import secure_filename

DEFAULT_MAX_PHOTO_BYTES = 5 * 1024 * 1024


class PhotoError(ValueError):
    """Uploaded file is not an acceptable photo."""


def photo_to_data_uri(file_storage, max_bytes=DEFAULT_MAX_PHOTO_BYTES):
    """
    Convert an uploaded image to a data URI.

    Args:
        file_storage: werkzeug FileStorage from request.files (may be None)
        max_bytes: Upper bound on the decoded image size

    Returns:
        The data URI, or None when no file was uploaded.

    Raises:
        PhotoError: if the upload is not an image or is too large.
    """
    if file_storage is None or not file_storage.filename:
        return None

    mimetype = file_storage.mimetype
    if not mimetype or mimetype == 'application/octet-stream':
        mimetype = mimetypes.guess_type(secure_filename(file_storage.filename))[0]
    if not mimetype or not mimetype.startswith('image/'):
        raise PhotoError("Photo must be an image file.")

    payload = file_storage.read(max_bytes + 1)
    if not payload:
        return None
    if len(payload) > max_bytes:
        raise PhotoError(f"Photo is too large (limit is {max_bytes} bytes).")

    encoded = base64.b64encode(payload).decode('ascii')
    return f"data:{mimetype};base64,{encoded}"
