"""
Member image uploads.

Files land in UPLOAD_FOLDER under a random prefix so two uploads with the
same original name never collide.
"""
import os
from uuid import uuid4

from flask import current_app
from werkzeug.utils import secure_filename

from utils.errors import ValidationError


def save_member_image(file_storage):
    """Save an uploaded image and return its stored path, or ``None``."""
    if file_storage is None or not file_storage.filename:
        return None

    filename = secure_filename(file_storage.filename)
    extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    if extension not in current_app.config['ALLOWED_IMAGE_EXTENSIONS']:
        raise ValidationError('Unsupported image type')

    folder = current_app.config['UPLOAD_FOLDER']
    os.makedirs(folder, exist_ok=True)
    path = os.path.join(folder, f'{uuid4().hex}_{filename}')
    file_storage.save(path)
    return path.replace('\\', '/')


def discard_upload(path):
    """Remove a file saved by ``save_member_image`` (e.g. after a failed request)."""
    if path and os.path.isfile(path):
        os.remove(path)
