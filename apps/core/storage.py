"""
Blob storage behind a small capability interface: put, get, delete and
signed_url, keyed by an opaque storage key.
"""
import logging
import os
import uuid

from django.conf import settings
from django.core import signing
from django.core.files.storage import FileSystemStorage
from django.urls import reverse
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

# Upload categories and the sub-directory each one is stored under.
CATEGORY_DIRECTORIES = {
    'LOAD_DOCUMENT': 'documents',
    'POD_SIGNATURE': 'pod-signatures',
    'POD_PHOTO': 'pod-photos',
    'DRIVER_DOCUMENT': 'driver-documents',
    'VEHICLE_DOCUMENT': 'vehicle-documents',
    'OTHER': 'other',
}

SIGNED_URL_SALT = 'tms.storage.signed-url'


class StorageError(Exception):
    pass


class BaseStorageBackend:
    """
    Interface every storage backend implements.
    """
    streams_locally = False

    def put(self, fileobj, category, original_name):
        raise NotImplementedError

    def get(self, key):
        raise NotImplementedError

    def delete(self, key):
        raise NotImplementedError

    def signed_url(self, key, expires_in=None):
        raise NotImplementedError

    @staticmethod
    def build_key(category, original_name):
        directory = CATEGORY_DIRECTORIES.get(category, CATEGORY_DIRECTORIES['OTHER'])
        extension = os.path.splitext(original_name or '')[1].lower()
        return f"{directory}/{uuid.uuid4().hex}{extension}"


class LocalStorageBackend(BaseStorageBackend):
    """
    Filesystem backend rooted at ``TMS['STORAGE_ROOT']``. Signed URLs point at
    the project's signed download view and expire after the configured TTL.
    """
    streams_locally = True

    def __init__(self, location=None):
        self.storage = FileSystemStorage(location=location or settings.TMS['STORAGE_ROOT'])

    def put(self, fileobj, category, original_name):
        key = self.build_key(category, original_name)
        try:
            saved_key = self.storage.save(key, fileobj)
        except OSError as e:
            logger.error(f"Failed to store file {original_name}: {str(e)}")
            raise StorageError(f"Failed to store file: {original_name}") from e

        logger.info(f"Stored file {original_name} as {saved_key}")
        return saved_key

    def get(self, key):
        if not self.storage.exists(key):
            raise StorageError(f"File not found in storage: {key}")
        return self.storage.open(key, 'rb')

    def delete(self, key):
        if self.storage.exists(key):
            self.storage.delete(key)
            logger.info(f"Deleted file {key}")

    def exists(self, key):
        return self.storage.exists(key)

    def signed_url(self, key, expires_in=None):
        token = signing.dumps({'key': key}, salt=SIGNED_URL_SALT)
        return reverse('core:signed_file', kwargs={'token': token})

    @staticmethod
    def resolve_signed_token(token, max_age=None):
        max_age = max_age or settings.TMS['SIGNED_URL_TTL']
        payload = signing.loads(token, salt=SIGNED_URL_SALT, max_age=max_age)
        return payload['key']


def get_storage_backend():
    backend_class = import_string(settings.TMS['STORAGE_BACKEND'])
    return backend_class()


def validate_upload(uploaded_file, allowed_types):
    """
    Reject files over the size ceiling or outside ``allowed_types``.
    Returns an error message, or None when the file is acceptable.
    """
    max_size = settings.TMS['MAX_FILE_SIZE']
    if uploaded_file.size > max_size:
        return f"File exceeds maximum size of {max_size // (1024 * 1024)}MB"
    if uploaded_file.content_type not in allowed_types:
        return f"Invalid file type: {uploaded_file.content_type}"
    return None
