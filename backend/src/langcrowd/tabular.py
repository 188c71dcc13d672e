"""
Tabular batch files (CSV / Excel) for bulk task creation.

Every cell is read as a string; headers are trimmed and stripped of a UTF-8
BOM so spreadsheets exported from Excel or Google Sheets line up with the
expected header names.
"""
import io
from typing import Dict, List, NamedTuple, Sequence, Tuple

import pandas as pd

from .errors import SchemaError
from .models import TaskType

CSV_EXTENSIONS = ('.csv', '.tsv', '.txt')
EXCEL_EXTENSIONS = ('.xlsx',)

# Tried in order; the first with the highest count in the header line wins
CANDIDATE_DELIMITERS = (',', '\t', ';', '|')

# Each inner tuple lists interchangeable header names for one required column
REQUIRED_HEADERS: Dict[TaskType, Tuple[Tuple[str, ...], ...]] = {
    TaskType.TRANSLATION: (('source_text',),),
    TaskType.TTS: (('text_to_speak', 'text_prompt'),),
    TaskType.TRANSCRIPTION: (('audio_url',),),
}

# Transcription batches in pipeline mode become asr recording tasks
PIPELINE_REQUIRED_HEADERS: Tuple[Tuple[str, ...], ...] = (('transcription_prompt',),)

OPTIONAL_HEADERS: Dict[TaskType, Tuple[str, ...]] = {
    TaskType.TRANSLATION: ('task_title', 'task_description', 'source_language', 'target_language', 'domain'),
    TaskType.TTS: ('task_title', 'task_description'),
    TaskType.TRANSCRIPTION: ('task_title', 'task_description'),
}

PIPELINE_OPTIONAL_HEADERS = ('task_title', 'task_description', 'image_url')


class TabularFile(NamedTuple):
    headers: List[str]
    rows: List[Dict[str, str]]


def normalize_header(header) -> str:
    return str(header).replace('\ufeff', '').strip()


def guess_delimiter(data: bytes) -> str:
    """Pick the delimiter that appears most often in the header line (default ',')."""
    text = data.decode('utf-8-sig', errors='replace')
    first_line = text.splitlines()[0] if text else ''
    counts = {d: first_line.count(d) for d in CANDIDATE_DELIMITERS}
    best = max(CANDIDATE_DELIMITERS, key=lambda d: counts[d])
    return best if counts[best] else ','


def _from_frame(frame: pd.DataFrame) -> TabularFile:
    headers = [normalize_header(c) for c in frame.columns]
    frame.columns = headers
    frame = frame.fillna('')

    rows = []
    for record in frame.to_dict(orient='records'):
        row = {key: str(value).strip() for key, value in record.items()}
        # Trailing blank spreadsheet rows
        if any(row.values()):
            rows.append(row)
    return TabularFile(headers, rows)


def read_csv(data: bytes) -> TabularFile:
    if not data.strip():
        return TabularFile([], [])

    try:
        frame = pd.read_csv(
            io.BytesIO(data),
            sep=guess_delimiter(data),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding='utf-8-sig',
        )
    except pd.errors.EmptyDataError:
        return TabularFile([], [])
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise SchemaError(f"Could not parse CSV file: {e}")

    return _from_frame(frame)


def read_excel(data: bytes) -> TabularFile:
    """Read the first sheet of an .xlsx workbook."""
    try:
        frame = pd.read_excel(
            io.BytesIO(data),
            sheet_name=0,
            dtype=str,
            keep_default_na=False,
            engine='openpyxl',
        )
    except Exception as e:
        raise SchemaError(f"Could not parse Excel file: {e}")

    return _from_frame(frame)


def missing_headers(requirements: Sequence[Tuple[str, ...]], headers: Sequence[str]) -> List[str]:
    """Names of required columns with none of their accepted spellings present."""
    present = set(headers)
    return [names[0] for names in requirements if not any(name in present for name in names)]
