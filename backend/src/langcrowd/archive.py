"""
Media archives (ZIP) for bulk asr / transcription task creation.
"""
import io
import posixpath
import zipfile
import zlib
from typing import Callable, Dict, List, Optional

from .config import config
from .errors import SchemaError

IMAGE_EXTENSIONS = ('jpg', 'jpeg', 'png', 'webp')
AUDIO_EXTENSIONS = ('mp3', 'wav', 'ogg', 'm4a', 'aac', 'flac')

# Platform metadata folders packed by archivers (macOS resource forks)
IGNORED_PREFIXES = ('__MACOSX/',)

# General purpose bit 0 of the local/central header
ENCRYPTED_FLAG = 0x1

MEDIA_TYPES = {
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'webp': 'image/webp',
    'mp3': 'audio/mpeg',
    'wav': 'audio/wav',
    'ogg': 'audio/ogg',
    'm4a': 'audio/mp4',
    'aac': 'audio/aac',
    'flac': 'audio/flac',
}


def _is_jpeg(data: bytes) -> bool:
    return data[:3] == b'\xff\xd8\xff'


def _is_png(data: bytes) -> bool:
    return data[:8] == b'\x89PNG\r\n\x1a\n'


def _is_webp(data: bytes) -> bool:
    return data[:4] == b'RIFF' and data[8:12] == b'WEBP'


def _is_mpeg_frame(data: bytes) -> bool:
    return len(data) >= 2 and data[0] == 0xFF and (data[1] & 0xE0) == 0xE0


def _is_mp3(data: bytes) -> bool:
    return data[:3] == b'ID3' or _is_mpeg_frame(data)


def _is_wav(data: bytes) -> bool:
    return data[:4] == b'RIFF' and data[8:12] == b'WAVE'


def _is_ogg(data: bytes) -> bool:
    return data[:4] == b'OggS'


def _is_flac(data: bytes) -> bool:
    return data[:4] == b'fLaC'


def _is_m4a(data: bytes) -> bool:
    return data[4:8] == b'ftyp'


def _is_aac(data: bytes) -> bool:
    # ADTS header, optionally behind an ID3 tag
    return data[:3] == b'ID3' or (len(data) >= 2 and data[0] == 0xFF and (data[1] & 0xF6) == 0xF0)


SIGNATURES: Dict[str, Callable[[bytes], bool]] = {
    'jpg': _is_jpeg,
    'jpeg': _is_jpeg,
    'png': _is_png,
    'webp': _is_webp,
    'mp3': _is_mp3,
    'wav': _is_wav,
    'ogg': _is_ogg,
    'm4a': _is_m4a,
    'aac': _is_aac,
    'flac': _is_flac,
}


def extension_of(name: str) -> str:
    return posixpath.splitext(name)[1].lstrip('.').lower()


def open_archive(data: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise SchemaError(f"Could not read ZIP archive: {e}")


def list_media_entries(archive: zipfile.ZipFile, extensions) -> List[zipfile.ZipInfo]:
    """Entries with a matching extension, skipping directories and metadata files."""
    entries = []
    for info in archive.infolist():
        name = info.filename
        if info.is_dir() or name.startswith(IGNORED_PREFIXES):
            continue
        if posixpath.basename(name).startswith('.'):
            continue
        if extension_of(name) in extensions:
            entries.append(info)
    return entries


def read_media_entry(archive: zipfile.ZipFile, info: zipfile.ZipInfo,
                     max_bytes: Optional[int] = None) -> bytes:
    """
    Extract one entry and check its bytes match the declared media type.

    Raises:
        SchemaError: encrypted, oversized, unreadable/corrupted entry, empty
            file, or content that does not match its extension
    """
    if info.flag_bits & ENCRYPTED_FLAG:
        raise SchemaError('Encrypted archive entry')
    limit = config.MAX_ENTRY_BYTES if max_bytes is None else max_bytes
    if info.file_size > limit:
        raise SchemaError(f"Archive entry too large: {info.file_size} bytes (limit {limit})")

    try:
        data = archive.read(info)
    except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError) as e:
        raise SchemaError(f"Corrupted archive entry: {e}")
    except zipfile.LargeZipFile as e:
        raise SchemaError(f"Archive entry too large: {e}")
    except RuntimeError as e:
        # zipfile reports password-protected members as RuntimeError
        raise SchemaError(f"Encrypted archive entry: {e}")

    if not data:
        raise SchemaError('Empty file')

    extension = extension_of(info.filename)
    if not SIGNATURES[extension](data):
        raise SchemaError(f"Content is not a valid {extension} file")
    return data
