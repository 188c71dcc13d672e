"""
Bulk Ingestion Pipeline.

Turns one uploaded file into many pending tasks:
- CSV / Excel rows  → translation, tts, transcription (or asr in pipeline mode)
- ZIP media archive → asr (images) or transcription (audio)

Structural problems (unreadable file, missing header, no items, bad defaults)
abort the whole batch before anything is written. Anything wrong with a single
row or archive entry is recorded in BatchResult.errors and the rest of the
batch carries on. Tasks are written in chunks; a failed chunk is retried one
task at a time so the failure is pinned on the item that caused it.
"""
import os
import posixpath
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from .archive import (
    AUDIO_EXTENSIONS, IMAGE_EXTENSIONS, MEDIA_TYPES,
    extension_of, list_media_entries, open_archive, read_media_entry,
)
from .config import config
from .content import clean_value, coerce_task_type
from .errors import Conflict, LangcrowdError, NotFound, SchemaError
from .logging import logger
from .models import IngestMode, Task, TaskType, new_id
from .projects import accepts_task_type
from .storage import Storage, sanitize_filename
from .tabular import (
    CSV_EXTENSIONS, EXCEL_EXTENSIONS, PIPELINE_REQUIRED_HEADERS, REQUIRED_HEADERS,
    missing_headers, read_csv, read_excel,
)
from .task_store import TaskStore

NO_ITEMS_MESSAGE = 'no valid items found'

SOURCE_CSV = 'csv'
SOURCE_EXCEL = 'excel'
SOURCE_ARCHIVE = 'archive'

ALLOWED_SOURCES = {
    TaskType.TRANSLATION: (SOURCE_CSV, SOURCE_EXCEL),
    TaskType.TTS: (SOURCE_CSV, SOURCE_EXCEL),
    TaskType.TRANSCRIPTION: (SOURCE_CSV, SOURCE_EXCEL, SOURCE_ARCHIVE),
    TaskType.ASR: (SOURCE_ARCHIVE,),
}

# Storage key prefixes for media pulled out of archives
MEDIA_PREFIXES = {
    TaskType.ASR: 'asr-task-images',
    TaskType.TRANSCRIPTION: 'transcription-audio',
}

ZIP_MAGIC = b'PK\x03\x04'


@dataclass
class IngestDefaults:
    """Batch-wide values applied to every created task."""
    creator_id: str
    language: str
    source_language: Optional[str] = None
    priority: Optional[str] = None
    project_id: Optional[str] = None
    batch_name: Optional[str] = None
    # Pipeline mode: prompt for archive items (tabular rows carry their own)
    transcription_prompt: Optional[str] = None


@dataclass
class BatchError:
    item: str
    reason: str

    def __str__(self) -> str:
        return f"{self.item}: {self.reason}"

    def to_dict(self) -> Dict[str, str]:
        return {'item': self.item, 'reason': self.reason}


@dataclass
class BatchResult:
    batch_id: str
    created: List[str] = field(default_factory=list)
    errors: List[BatchError] = field(default_factory=list)
    aborted: bool = False

    def summary(self) -> str:
        return f"{len(self.created)} created, {len(self.errors)} errors"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'batchId': self.batch_id,
            'created': list(self.created),
            'errors': [e.to_dict() for e in self.errors],
            'aborted': self.aborted,
            'summary': self.summary(),
        }


def _reason(error: Exception) -> str:
    return error.message if isinstance(error, LangcrowdError) else str(error)


def _source_name(source) -> Optional[str]:
    if isinstance(source, (str, os.PathLike)):
        return os.path.basename(os.fspath(source))
    name = getattr(source, 'name', None)
    return os.path.basename(name) if isinstance(name, str) else None


def read_source(source: Union[bytes, bytearray, str, os.PathLike, Any]) -> bytes:
    """Accept raw bytes, a filesystem path, or a binary file-like object."""
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if isinstance(source, (str, os.PathLike)):
        try:
            with open(source, 'rb') as f:
                return f.read()
        except OSError as e:
            raise SchemaError(f"Could not read batch file: {e}")
    if hasattr(source, 'read'):
        return source.read()
    raise SchemaError('Batch source must be bytes, a path or a binary file')


def detect_source_kind(filename: Optional[str], data: bytes) -> str:
    """Classify the upload by extension, falling back to its leading bytes."""
    if filename:
        extension = os.path.splitext(filename.lower())[1]
        if extension in CSV_EXTENSIONS:
            return SOURCE_CSV
        if extension in EXCEL_EXTENSIONS:
            return SOURCE_EXCEL
        if extension == '.zip':
            return SOURCE_ARCHIVE
        if extension == '.xls':
            raise SchemaError('Legacy .xls workbooks are not supported; save the file as .xlsx')
        raise SchemaError(f"Unsupported batch file type: {extension or filename}")

    if data.startswith(ZIP_MAGIC):
        # An .xlsx workbook is itself a zip package
        return SOURCE_EXCEL if b'[Content_Types].xml' in data[:2048] else SOURCE_ARCHIVE
    return SOURCE_CSV


class IngestionPipeline:

    def __init__(self, tasks: TaskStore, storage: Storage, chunk_size: Optional[int] = None):
        self.tasks = tasks
        self.storage = storage
        self.chunk_size = chunk_size or config.INGEST_CHUNK_SIZE

    def ingest(
        self,
        source,
        task_type: Union[str, TaskType],
        defaults: IngestDefaults,
        filename: Optional[str] = None,
        mode: Union[str, IngestMode] = IngestMode.DIRECT,
    ) -> BatchResult:
        """
        Create tasks from a tabular file or media archive.

        Args:
            source: bytes, path or binary file-like object
            task_type: translation, tts, transcription or asr
            defaults: batch-wide creator, language, priority and project
            filename: original upload name, used to pick the parser
            mode: 'pipeline' turns a transcription batch into asr recording tasks

        Returns:
            BatchResult with the created task ids and per-item errors. When a
            structural problem is found, aborted is set and nothing is created.
        """
        result = BatchResult(batch_id=new_id())
        filename = filename or _source_name(source)
        label = filename or 'batch'

        try:
            task_type = coerce_task_type(task_type)
            mode = self._coerce_mode(task_type, mode)
            data = read_source(source)
            if len(data) > config.MAX_UPLOAD_BYTES:
                raise SchemaError(f"Batch file exceeds {config.MAX_UPLOAD_BYTES} bytes")

            kind = detect_source_kind(filename, data)
            if kind not in ALLOWED_SOURCES[task_type]:
                raise SchemaError(f"{task_type.value} batches cannot be ingested from a {kind} file")
            self._check_defaults(task_type, mode, defaults)

            if kind == SOURCE_ARCHIVE:
                self._ingest_archive(data, task_type, mode, defaults, result)
            else:
                self._ingest_tabular(data, kind, task_type, mode, defaults, result)

        except (SchemaError, NotFound) as e:
            # Raised before any task was written
            logger.warning(f"Batch {result.batch_id} ({label}) aborted: {e.message}")
            result.aborted = True
            result.created = []
            result.errors = [BatchError(item=label, reason=e.message)]
            return result

        logger.info(f"Batch {result.batch_id} ({label}): {result.summary()}")
        return result

    @staticmethod
    def _coerce_mode(task_type: TaskType, mode) -> IngestMode:
        try:
            mode = IngestMode(mode or IngestMode.DIRECT)
        except ValueError:
            raise SchemaError(f"Unknown ingestion mode: {mode}")
        if mode == IngestMode.PIPELINE and task_type != TaskType.TRANSCRIPTION:
            raise SchemaError('Pipeline mode only applies to transcription batches')
        return mode

    def _check_defaults(self, task_type: TaskType, mode: IngestMode, defaults: IngestDefaults) -> None:
        if not clean_value(defaults.creator_id):
            raise SchemaError('Batch creator is required')
        if not clean_value(defaults.language):
            raise SchemaError('Batch language is required')

        if task_type == TaskType.TRANSLATION:
            source_language = clean_value(defaults.source_language)
            if source_language and source_language == clean_value(defaults.language):
                raise SchemaError('Source and target languages cannot be the same for translation tasks')

        if defaults.project_id:
            project = self.tasks.projects.get(defaults.project_id)
            created_type = self._created_type(task_type, mode)
            if not accepts_task_type(project, created_type):
                raise SchemaError(
                    f"Project {defaults.project_id} holds {project.project_type.value} tasks, "
                    f"not {created_type.value}"
                )

    @staticmethod
    def _created_type(task_type: TaskType, mode: IngestMode) -> TaskType:
        if task_type == TaskType.TRANSCRIPTION and mode == IngestMode.PIPELINE:
            return TaskType.ASR
        return task_type

    def _build(self, task_type: TaskType, language: str, content: Dict[str, Any],
               defaults: IngestDefaults, batch_id: str) -> Task:
        return self.tasks.build(
            task_type,
            language,
            defaults.priority,
            content,
            defaults.creator_id,
            project_id=defaults.project_id,
            batch_id=batch_id,
        )

    # ------------------------------------------------------------------
    # Tabular
    # ------------------------------------------------------------------

    def _ingest_tabular(self, data: bytes, kind: str, task_type: TaskType, mode: IngestMode,
                        defaults: IngestDefaults, result: BatchResult) -> None:
        table = read_excel(data) if kind == SOURCE_EXCEL else read_csv(data)
        if not table.headers:
            raise SchemaError(NO_ITEMS_MESSAGE)

        pipeline = mode == IngestMode.PIPELINE
        requirements = PIPELINE_REQUIRED_HEADERS if pipeline else REQUIRED_HEADERS[task_type]
        missing = missing_headers(requirements, table.headers)
        if missing:
            raise SchemaError(f"missing required header: {', '.join(missing)}")
        if not table.rows:
            raise SchemaError(NO_ITEMS_MESSAGE)

        created_type = self._created_type(task_type, mode)
        pending: List[Tuple[str, Task]] = []

        for number, row in enumerate(table.rows, start=1):
            item = f"row {number}"
            try:
                language, content = self._row_content(created_type, row, number, defaults)
                task = self._build(created_type, language, content, defaults, result.batch_id)
            except LangcrowdError as e:
                logger.warning(f"Batch {result.batch_id} {item} skipped: {e.message}")
                result.errors.append(BatchError(item=item, reason=e.message))
                continue

            pending.append((item, task))
            if len(pending) >= self.chunk_size:
                self._flush(pending, result)
                pending = []

        self._flush(pending, result)

    @staticmethod
    def _titles(row: Dict[str, str], number: int, defaults: IngestDefaults, task_type: TaskType) -> Dict[str, str]:
        batch_label = clean_value(defaults.batch_name) or task_type.value
        return {
            'task_title': row.get('task_title') or f"{batch_label} - Item {number}",
            'task_description': row.get('task_description') or f"Task {number} from batch '{batch_label}'.",
            'batch_name': clean_value(defaults.batch_name),
        }

    def _row_content(self, task_type: TaskType, row: Dict[str, str], number: int,
                     defaults: IngestDefaults) -> Tuple[str, Dict[str, Any]]:
        """Map one row to (task language, raw content) for the created task type."""
        content = self._titles(row, number, defaults, task_type)

        if task_type == TaskType.TRANSLATION:
            target_language = row.get('target_language') or defaults.language
            source_language = row.get('source_language') or defaults.source_language
            if clean_value(source_language) and clean_value(source_language) == clean_value(target_language):
                raise SchemaError('Source and target languages cannot be the same for translation tasks')
            content.update(
                source_text=row.get('source_text'),
                source_language=source_language,
                target_language=target_language,
                domain=row.get('domain') or 'general',
            )
            return target_language, content

        if task_type == TaskType.TTS:
            content['text_prompt'] = row.get('text_prompt') or row.get('text_to_speak')
        elif task_type == TaskType.TRANSCRIPTION:
            content['audio_url'] = row.get('audio_url')
        elif task_type == TaskType.ASR:
            content.update(
                transcription_prompt=row.get('transcription_prompt'),
                image_url=row.get('image_url'),
            )
            if not clean_value(content['transcription_prompt']):
                raise SchemaError('transcription_prompt is required in pipeline mode')
        return defaults.language, content

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    def _ingest_archive(self, data: bytes, task_type: TaskType, mode: IngestMode,
                        defaults: IngestDefaults, result: BatchResult) -> None:
        created_type = self._created_type(task_type, mode)
        # asr tasks (direct or pipeline) are prompted by images; transcription by audio
        extensions = IMAGE_EXTENSIONS if created_type == TaskType.ASR else AUDIO_EXTENSIONS

        with open_archive(data) as archive:
            entries = list_media_entries(archive, extensions)
            if not entries:
                raise SchemaError(NO_ITEMS_MESSAGE)

            pending: List[Tuple[str, Task]] = []
            for info in entries:
                item = info.filename
                try:
                    blob = read_media_entry(archive, info)
                    url = self._upload(created_type, defaults.creator_id, item, blob)
                    content = self._entry_content(created_type, mode, item, url, defaults)
                    task = self._build(created_type, defaults.language, content, defaults, result.batch_id)
                except LangcrowdError as e:
                    logger.warning(f"Batch {result.batch_id} entry {item} skipped: {e.message}")
                    result.errors.append(BatchError(item=item, reason=e.message))
                    continue
                except Exception as e:
                    logger.error(f"Batch {result.batch_id} entry {item} failed: {e}")
                    result.errors.append(BatchError(item=item, reason=_reason(e)))
                    continue

                pending.append((item, task))
                if len(pending) >= self.chunk_size:
                    self._flush(pending, result)
                    pending = []

            self._flush(pending, result)

    def _upload(self, task_type: TaskType, creator_id: str, name: str, blob: bytes) -> str:
        path = f"{MEDIA_PREFIXES[task_type]}/{creator_id}/{new_id()}-{sanitize_filename(name)}"
        return self.storage.put(path, blob, MEDIA_TYPES[extension_of(name)])

    @staticmethod
    def _entry_content(task_type: TaskType, mode: IngestMode, name: str, url: str,
                       defaults: IngestDefaults) -> Dict[str, Any]:
        base = posixpath.basename(name)
        batch_name = clean_value(defaults.batch_name)

        if task_type == TaskType.TRANSCRIPTION:
            return {
                'audio_url': url,
                'task_title': f"Transcription Task: {base}",
                'task_description': 'Transcribe the provided audio recording.',
                'batch_name': batch_name,
            }

        content = {
            'image_url': url,
            'task_title': f"ASR Task: {base}",
            'task_description': 'Record a description for the provided image.',
            'batch_name': batch_name,
        }
        if mode == IngestMode.PIPELINE:
            content['transcription_prompt'] = (
                clean_value(defaults.transcription_prompt) or 'Describe what you see in the image.'
            )
        return content

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _flush(self, pending: List[Tuple[str, Task]], result: BatchResult) -> None:
        if not pending:
            return

        try:
            written = self.tasks.create_many([task for _, task in pending])
        except Exception as e:
            logger.error(f"Batch {result.batch_id}: chunk write raised {e}")
            written = False

        if written:
            result.created.extend(task.task_id for _, task in pending)
            return

        logger.warning(f"Batch {result.batch_id}: chunk of {len(pending)} failed, retrying item by item")
        for item, task in pending:
            try:
                self.tasks.insert(task)
            except Conflict:
                # Already written by the partially applied chunk
                if self.tasks.store.get_task(task.task_id) is not None:
                    result.created.append(task.task_id)
                    continue
                result.errors.append(BatchError(item=item, reason='Task could not be written'))
                continue
            except Exception as e:
                logger.error(f"Batch {result.batch_id} {item} failed to write: {e}")
                result.errors.append(BatchError(item=item, reason=_reason(e)))
                continue
            result.created.append(task.task_id)
