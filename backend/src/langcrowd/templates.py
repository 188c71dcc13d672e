"""
Downloadable sample files for bulk uploads, one per tabular task type.
"""
import csv
import io
from typing import Union

import pandas as pd

from .content import coerce_task_type
from .errors import SchemaError
from .models import IngestMode, TaskType
from .tabular import OPTIONAL_HEADERS, PIPELINE_OPTIONAL_HEADERS

SAMPLE_ROWS = {
    TaskType.TRANSLATION: [
        {'source_text': 'Hello, how are you?', 'task_title': 'Greeting translation',
         'task_description': 'Translate this greeting to the target language',
         'source_language': 'English', 'target_language': 'Akan', 'domain': 'general'},
        {'source_text': 'Welcome to our community.', 'task_title': 'Welcome message',
         'task_description': 'Translate this welcome message accurately',
         'source_language': 'English', 'target_language': 'Ewe', 'domain': 'general'},
        {'source_text': 'Please wash your hands regularly.', 'task_title': 'Health instruction',
         'task_description': 'Translate this health advice clearly',
         'source_language': 'English', 'target_language': 'Ga', 'domain': 'health'},
    ],
    TaskType.TTS: [
        {'text_to_speak': 'The quick brown fox jumps over the lazy dog.', 'task_title': 'Pronunciation practice',
         'task_description': 'Read this sentence clearly with correct pronunciation'},
        {'text_to_speak': 'Welcome to our language community. We are happy to have you here.',
         'task_title': 'Welcome message',
         'task_description': 'Record this welcome message with natural intonation'},
    ],
    TaskType.TRANSCRIPTION: [
        {'audio_url': 'https://example.com/audio1.mp3', 'task_title': 'Market conversation',
         'task_description': 'Transcribe this market conversation accurately'},
        {'audio_url': 'https://example.com/audio2.mp3', 'task_title': 'Radio broadcast',
         'task_description': 'Transcribe this news broadcast accurately'},
    ],
}

PIPELINE_SAMPLE_ROWS = [
    {'transcription_prompt': 'Describe what is happening at the market today.',
     'task_title': 'Market scene', 'task_description': 'Record yourself describing a busy market',
     'image_url': ''},
    {'transcription_prompt': 'Give directions from the bus station to the hospital.',
     'task_title': 'Directions', 'task_description': 'Record clear spoken directions',
     'image_url': ''},
]

# First column of each template is the required one
LEAD_HEADERS = {
    TaskType.TRANSLATION: 'source_text',
    TaskType.TTS: 'text_to_speak',
    TaskType.TRANSCRIPTION: 'audio_url',
}

FORMATS = ('csv', 'xlsx')


def template_filename(task_type: Union[str, TaskType], fmt: str = 'csv') -> str:
    return f"{coerce_task_type(task_type).value}_template.{fmt}"


def build_template(
    task_type: Union[str, TaskType],
    fmt: str = 'csv',
    mode: Union[str, IngestMode] = IngestMode.DIRECT,
) -> bytes:
    """
    Render the sample upload file for a task type.

    Raises:
        SchemaError: asr (archive-only), or an unknown format
    """
    task_type = coerce_task_type(task_type)
    if fmt not in FORMATS:
        raise SchemaError(f"Unknown template format: {fmt}")

    try:
        mode = IngestMode(mode)
    except ValueError:
        raise SchemaError(f"Unknown ingestion mode: {mode}")

    if mode == IngestMode.PIPELINE and task_type == TaskType.TRANSCRIPTION:
        headers = ['transcription_prompt', *PIPELINE_OPTIONAL_HEADERS]
        rows = PIPELINE_SAMPLE_ROWS
    elif task_type in SAMPLE_ROWS:
        headers = [LEAD_HEADERS[task_type], *OPTIONAL_HEADERS[task_type]]
        rows = SAMPLE_ROWS[task_type]
    else:
        raise SchemaError(f"{task_type.value} tasks are uploaded as a ZIP archive; no template available")

    frame = pd.DataFrame(rows, columns=headers)

    if fmt == 'csv':
        return frame.to_csv(index=False, quoting=csv.QUOTE_ALL).encode('utf-8')

    buffer = io.BytesIO()
    frame.to_excel(buffer, index=False, engine='openpyxl')
    return buffer.getvalue()
