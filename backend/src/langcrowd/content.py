"""
Per-type task content payloads.

Each task type has exactly one content record shape. parse_content() is the
single entry point that turns a raw mapping (JSON body, tabular row, stored
item) into the variant for its type, so every consumer (ingestion, display,
validation) dispatches through CONTENT_TYPES instead of probing optional keys.
"""
from dataclasses import asdict, dataclass, fields
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Union

from .errors import SchemaError
from .models import TaskType


def clean_value(value: Any) -> Optional[str]:
    """Normalize a raw cell/field value to a stripped string, or None if blank."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class _ContentMixin:
    TASK_TYPE: ClassVar[TaskType]
    REQUIRED: ClassVar[Tuple[str, ...]] = ()
    ALIASES: ClassVar[Dict[str, str]] = {}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]):
        values = dict(raw)
        for alias, name in cls.ALIASES.items():
            if clean_value(values.get(name)) is None and clean_value(values.get(alias)) is not None:
                values[name] = values[alias]

        missing = [name for name in cls.REQUIRED if clean_value(values.get(name)) is None]
        if missing:
            raise SchemaError(
                f"{cls.TASK_TYPE.value} content missing required field: {', '.join(missing)}"
            )

        kwargs = {}
        for f in fields(cls):
            value = clean_value(values.get(f.name))
            if value is not None:
                kwargs[f.name] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class TranslationContent(_ContentMixin):
    TASK_TYPE: ClassVar[TaskType] = TaskType.TRANSLATION
    REQUIRED: ClassVar[Tuple[str, ...]] = ('source_text', 'source_language')

    source_text: str
    source_language: str
    target_language: Optional[str] = None
    domain: str = 'general'
    task_title: Optional[str] = None
    task_description: Optional[str] = None
    batch_name: Optional[str] = None

    @property
    def prompt(self) -> str:
        return self.source_text


@dataclass(frozen=True)
class TtsContent(_ContentMixin):
    TASK_TYPE: ClassVar[TaskType] = TaskType.TTS
    REQUIRED: ClassVar[Tuple[str, ...]] = ('text_prompt',)
    ALIASES: ClassVar[Dict[str, str]] = {'text_to_speak': 'text_prompt'}

    text_prompt: str
    task_title: Optional[str] = None
    task_description: Optional[str] = None
    batch_name: Optional[str] = None

    @property
    def prompt(self) -> str:
        return self.text_prompt


@dataclass(frozen=True)
class TranscriptionContent(_ContentMixin):
    TASK_TYPE: ClassVar[TaskType] = TaskType.TRANSCRIPTION
    REQUIRED: ClassVar[Tuple[str, ...]] = ('audio_url',)

    audio_url: str
    task_title: Optional[str] = None
    task_description: Optional[str] = None
    batch_name: Optional[str] = None

    @property
    def prompt(self) -> str:
        return self.audio_url


@dataclass(frozen=True)
class AsrContent(_ContentMixin):
    TASK_TYPE: ClassVar[TaskType] = TaskType.ASR
    REQUIRED: ClassVar[Tuple[str, ...]] = ('task_title', 'task_description')

    task_title: str
    task_description: str
    image_url: Optional[str] = None
    # Set when the task feeds the record → transcribe pipeline
    transcription_prompt: Optional[str] = None
    batch_name: Optional[str] = None

    @property
    def prompt(self) -> str:
        return self.transcription_prompt or self.task_description


TaskContent = Union[TranslationContent, TtsContent, TranscriptionContent, AsrContent]

CONTENT_TYPES = {
    TaskType.TRANSLATION: TranslationContent,
    TaskType.TTS: TtsContent,
    TaskType.TRANSCRIPTION: TranscriptionContent,
    TaskType.ASR: AsrContent,
}

# Minimal shape of a worker's submitted payload, per task type
PAYLOAD_FIELDS = {
    TaskType.TRANSLATION: ('translation_text',),
    TaskType.TTS: ('audio_url',),
    TaskType.TRANSCRIPTION: ('transcript_text',),
    TaskType.ASR: ('audio_url',),
}


def coerce_task_type(task_type: Union[str, TaskType]) -> TaskType:
    try:
        return TaskType(task_type)
    except ValueError:
        raise SchemaError(f"Unknown task type: {task_type}")


def parse_content(task_type: Union[str, TaskType], raw: Union[Mapping[str, Any], TaskContent]) -> TaskContent:
    """
    Build the content variant for a task type.

    Args:
        task_type: TaskType or its string value
        raw: Mapping of content fields, or an already-built variant

    Returns:
        The content record for the type

    Raises:
        SchemaError: unknown type, wrong variant, or missing required fields
    """
    content_cls = CONTENT_TYPES[coerce_task_type(task_type)]

    if isinstance(raw, content_cls):
        return raw
    if not isinstance(raw, Mapping):
        raise SchemaError(f"{content_cls.TASK_TYPE.value} content must be an object")

    return content_cls.from_dict(raw)


def validate_payload(task_type: Union[str, TaskType], payload: Any) -> Dict[str, Any]:
    """Check a submitted payload carries the minimal fields for its task type."""
    task_type = coerce_task_type(task_type)
    if not isinstance(payload, Mapping):
        raise SchemaError('Submitted payload must be an object')

    missing = [name for name in PAYLOAD_FIELDS[task_type] if clean_value(payload.get(name)) is None]
    if missing:
        raise SchemaError(
            f"{task_type.value} payload missing required field: {', '.join(missing)}"
        )
    return dict(payload)


def source_language_of(content: TaskContent) -> Optional[str]:
    """Source language of the material a worker reads, where the type has one."""
    if isinstance(content, TranslationContent):
        return content.source_language
    return None
