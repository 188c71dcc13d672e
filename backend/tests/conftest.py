"""
Shared fixtures: an in-memory store and a fake blob storage stand in for
DynamoDB and S3.
"""
import io
import os
import sys
import zipfile

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from langcrowd.errors import StorageError  # noqa: E402
from langcrowd.memory_store import InMemoryStore  # noqa: E402
from langcrowd.service import CrowdService  # noqa: E402
from langcrowd.storage import Storage  # noqa: E402

# Minimal byte prefixes that pass the media signature checks
JPEG = b'\xff\xd8\xff\xe0' + b'\x00' * 32
PNG = b'\x89PNG\r\n\x1a\n' + b'\x00' * 32
MP3 = b'ID3\x04\x00' + b'\x00' * 32
WAV = b'RIFF\x24\x00\x00\x00WAVEfmt ' + b'\x00' * 32


class FakeStorage(Storage):
    """Keeps uploads in a dict; fails for paths ending in any of fail_on."""

    def __init__(self, fail_on=()):
        self.objects = {}
        self.fail_on = tuple(fail_on)

    def put(self, path, data, content_type):
        if self.fail_on and path.endswith(self.fail_on):
            raise StorageError(f"Storage upload failed: {path}")
        self.objects[path] = (data, content_type)
        return f"https://media.test/{path}"


def make_zip(entries, compression=zipfile.ZIP_STORED) -> bytes:
    """Build a ZIP archive from {name: bytes}; names ending in '/' become directories."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', compression) as archive:
        for name, data in entries.items():
            if name.endswith('/'):
                archive.writestr(zipfile.ZipInfo(name), b'')
            else:
                archive.writestr(name, data)
    return buffer.getvalue()


def worker_event(sub, groups='', body=None, path=None, query=None, **extra):
    """API Gateway proxy event with Cognito claims."""
    event = {
        'requestContext': {'authorizer': {'claims': {'sub': sub, 'cognito:groups': groups}}},
        'pathParameters': path,
        'queryStringParameters': query,
        'body': body,
    }
    event.update(extra)
    return event


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def service(store, storage):
    return CrowdService(store, storage, chunk_size=50)


@pytest.fixture
def translation_task(service):
    """A pending translation task id."""
    return service.create_task(
        'translation',
        'Akan',
        'high',
        {'source_text': 'Good morning', 'source_language': 'English'},
        'creator-1',
    )


@pytest.fixture
def transcription_task(service):
    """A pending transcription task id."""
    return service.create_task(
        'transcription',
        'Ewe',
        None,
        {'audio_url': 'https://media.test/clip.mp3'},
        'creator-1',
    )
