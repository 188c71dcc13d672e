"""
Tests for the bulk ingestion pipeline (tabular files and media archives).
"""
import io
import zipfile
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest
from botocore.exceptions import EndpointConnectionError

from conftest import JPEG, MP3, PNG, WAV, FakeStorage, make_zip
from langcrowd.archive import read_media_entry
from langcrowd.config import config
from langcrowd.dynamo import DynamoStore
from langcrowd.ingestion import IngestDefaults, IngestionPipeline, detect_source_kind
from langcrowd.errors import SchemaError
from langcrowd.models import TaskStatus, TaskType
from langcrowd.service import CrowdService


DYNAMO_TABLES = {
    'tasks': 'test-tasks',
    'contributions': 'test-contributions',
    'validations': 'test-validations',
    'projects': 'test-projects',
    'history': 'test-task-history',
}


def _mark_encrypted(data, name):
    """Set the encrypted flag on one entry's local and central directory headers."""
    buf = bytearray(data)
    encoded = name.encode('utf-8')
    # (signature, offset of the flag bits, offset of the file name)
    for signature, flag_at, name_at in ((b'PK\x03\x04', 6, 30), (b'PK\x01\x02', 8, 46)):
        start = buf.find(signature)
        while start != -1:
            if buf[start + name_at:start + name_at + len(encoded)] == encoded:
                buf[start + flag_at] |= 0x1
            start = buf.find(signature, start + 1)
    return bytes(buf)


def _defaults(**overrides):
    values = {'creator_id': 'creator-1', 'language': 'Akan', 'source_language': 'English'}
    values.update(overrides)
    return IngestDefaults(**values)


class TestTabularIngestion:
    """Tests for CSV / Excel batches."""

    def test_translation_csv_creates_one_task_per_row(self, service):
        data = (
            'source_text,task_title,domain\n'
            'Good morning,Greeting,general\n'
            'How are you?,,\n'
            'Wash your hands,Health,health\n'
        ).encode('utf-8')

        result = service.ingest_batch(data, 'translation', _defaults(), filename='batch.csv')

        assert result.summary() == '3 created, 0 errors'
        tasks = [service.get_task(task_id) for task_id in result.created]
        assert [t.content.source_text for t in tasks] == ['Good morning', 'How are you?', 'Wash your hands']
        assert all(t.status == TaskStatus.PENDING for t in tasks)
        assert all(t.batch_id == result.batch_id for t in tasks)
        assert tasks[0].language == 'Akan'
        assert tasks[0].content.source_language == 'English'
        assert tasks[2].content.domain == 'health'

    def test_batch_tasks_get_creation_history(self, service):
        result = service.ingest_batch(b'source_text\nOne\nTwo\n', 'translation', _defaults(), filename='batch.csv')

        assert len(result.created) == 2
        for task_id in result.created:
            history = service.task_history(task_id)
            assert [(c.from_status, c.to_status, c.actor_id) for c in history] == [
                (None, TaskStatus.PENDING, 'creator-1')]

    def test_missing_header_aborts_batch(self, service, store):
        data = b'text,title\nHello,Greeting\n'

        result = service.ingest_batch(data, 'translation', _defaults(), filename='batch.csv')

        assert result.aborted
        assert result.created == []
        assert [e.reason for e in result.errors] == ['missing required header: source_text']
        assert store.query_tasks() == []

    def test_header_only_file(self, service):
        result = service.ingest_batch(b'source_text\n', 'translation', _defaults(), filename='batch.csv')

        assert result.created == []
        assert [e.reason for e in result.errors] == ['no valid items found']

    def test_empty_file(self, service):
        result = service.ingest_batch(b'', 'tts', _defaults(), filename='batch.csv')

        assert [e.reason for e in result.errors] == ['no valid items found']

    def test_bom_semicolons_and_alias_header(self, service):
        data = '\ufeff text_to_speak ;task_title\nRead this;Practice\n'.encode('utf-8')

        result = service.ingest_batch(data, 'tts', _defaults(), filename='voices.csv')

        assert len(result.created) == 1
        assert service.get_task(result.created[0]).content.text_prompt == 'Read this'

    def test_bad_row_is_skipped_and_reported(self, service):
        data = b'audio_url,task_title\nhttps://a.test/1.mp3,One\n,Two\nhttps://a.test/3.mp3,Three\n'

        result = service.ingest_batch(data, 'transcription', _defaults(), filename='audio.csv')

        assert len(result.created) == 2
        assert [str(e) for e in result.errors] == [
            'row 2: transcription content missing required field: audio_url'
        ]

    def test_same_source_and_target_language_rejected(self, service):
        data = b'source_text\nHello\n'

        result = service.ingest_batch(
            data, 'translation', _defaults(source_language='Akan'), filename='batch.csv')

        assert result.aborted
        assert 'cannot be the same' in result.errors[0].reason

    def test_row_languages_override_defaults(self, service):
        data = b'source_text,source_language,target_language\nHello,French,Ewe\n'

        result = service.ingest_batch(data, 'translation', _defaults(), filename='batch.csv')

        task = service.get_task(result.created[0])
        assert task.language == 'Ewe'
        assert task.content.source_language == 'French'

    def test_excel_workbook(self, service):
        buffer = io.BytesIO()
        pd.DataFrame({'text_to_speak': ['First line', 'Second line'], 'task_title': ['A', None]}) \
            .to_excel(buffer, index=False, engine='openpyxl')

        result = service.ingest_batch(buffer.getvalue(), 'tts', _defaults(), filename='voices.xlsx')

        assert result.summary() == '2 created, 0 errors'
        prompts = sorted(service.get_task(t).content.text_prompt for t in result.created)
        assert prompts == ['First line', 'Second line']

    def test_tabular_not_accepted_for_asr(self, service):
        result = service.ingest_batch(b'a\n1\n', 'asr', _defaults(), filename='batch.csv')

        assert result.aborted
        assert 'asr batches cannot be ingested' in result.errors[0].reason

    def test_unsupported_extension(self, service):
        result = service.ingest_batch(b'{}', 'tts', _defaults(), filename='batch.json')

        assert result.aborted


class TestPipelineMode:
    """Transcription batches in pipeline mode become asr recording tasks."""

    def test_tabular_rows_create_asr_tasks_with_prompt(self, service):
        data = b'transcription_prompt,task_title\nDescribe the market,Market\n'

        result = service.ingest_batch(data, 'transcription', _defaults(), filename='p.csv', mode='pipeline')

        task = service.get_task(result.created[0])
        assert task.task_type == TaskType.ASR
        assert task.content.transcription_prompt == 'Describe the market'
        assert task.content.task_title == 'Market'

    def test_pipeline_requires_prompt_header(self, service):
        data = b'audio_url\nhttps://a.test/1.mp3\n'

        result = service.ingest_batch(data, 'transcription', _defaults(), filename='p.csv', mode='pipeline')

        assert result.errors[0].reason == 'missing required header: transcription_prompt'

    def test_pipeline_image_archive(self, service):
        data = make_zip({'scene.jpg': JPEG})

        result = service.ingest_batch(
            data, 'transcription', _defaults(transcription_prompt='Say what you see'),
            filename='scenes.zip', mode='pipeline',
        )

        task = service.get_task(result.created[0])
        assert task.task_type == TaskType.ASR
        assert task.content.prompt == 'Say what you see'

    def test_pipeline_only_for_transcription(self, service):
        result = service.ingest_batch(b'source_text\nHi\n', 'translation', _defaults(),
                                      filename='b.csv', mode='pipeline')

        assert result.aborted


class TestArchiveIngestion:
    """Tests for ZIP media batches."""

    def test_image_archive_with_corrupted_entries(self, service, storage):
        entries = {f'images/photo{i}.jpg': JPEG + bytes([i]) for i in range(8)}
        entries['images/broken.jpg'] = JPEG + b'CORRUPT-ME-PAYLOAD'
        entries['images/fake.png'] = b'not really a png'
        data = make_zip(entries)
        # Flip stored bytes so the entry fails its CRC check
        data = data.replace(b'CORRUPT-ME-PAYLOAD', b'XORRUPT-ME-PAYLOAD')

        result = service.ingest_batch(data, 'asr', _defaults(), filename='images.zip')

        assert result.summary() == '8 created, 2 errors'
        assert sorted(e.item for e in result.errors) == ['images/broken.jpg', 'images/fake.png']
        assert len(storage.objects) == 8
        task = service.get_task(result.created[0])
        assert task.task_type == TaskType.ASR
        assert task.content.image_url.startswith('https://media.test/asr-task-images/creator-1/')

    def test_metadata_and_wrong_modality_skipped(self, service):
        data = make_zip({
            '__MACOSX/._clip.mp3': MP3,
            '.hidden.mp3': MP3,
            'docs/': b'',
            'cover.png': PNG,
            'clip.mp3': MP3,
            'take2.wav': WAV,
        })

        result = service.ingest_batch(data, 'transcription', _defaults(), filename='audio.zip')

        assert result.summary() == '2 created, 0 errors'
        names = sorted(service.get_task(t).content.audio_url.rsplit('-', 1)[-1] for t in result.created)
        assert names == ['clip.mp3', 'take2.wav']

    def test_no_matching_entries(self, service):
        data = make_zip({'notes.txt': b'hello'})

        result = service.ingest_batch(data, 'asr', _defaults(), filename='images.zip')

        assert [e.reason for e in result.errors] == ['no valid items found']

    def test_not_a_zip(self, service):
        result = service.ingest_batch(b'garbage', 'asr', _defaults(), filename='images.zip')

        assert result.aborted
        assert result.errors[0].reason.startswith('Could not read ZIP archive')

    def test_storage_failure_is_per_entry(self, store):
        service = CrowdService(store, FakeStorage(fail_on=('b.jpg',)))
        data = make_zip({'a.jpg': JPEG, 'b.jpg': JPEG, 'c.jpg': JPEG})

        result = service.ingest_batch(data, 'asr', _defaults(), filename='images.zip')

        assert len(result.created) == 2
        assert result.errors[0].item == 'b.jpg'

    def test_encrypted_entry_is_per_entry(self, service, storage):
        data = _mark_encrypted(make_zip({'a.jpg': JPEG, 'locked.jpg': JPEG, 'b.jpg': JPEG}), 'locked.jpg')

        result = service.ingest_batch(data, 'asr', _defaults(), filename='images.zip')

        assert not result.aborted
        assert len(result.created) == 2
        assert [str(e) for e in result.errors] == ['locked.jpg: Encrypted archive entry']
        assert not any(path.endswith('locked.jpg') for path in storage.objects)

    def test_password_error_from_reader_is_schema_error(self):
        archive = MagicMock()
        archive.read.side_effect = RuntimeError('File is encrypted, password required for extraction')

        with pytest.raises(SchemaError) as exc:
            read_media_entry(archive, zipfile.ZipInfo('clip.jpg'))
        assert exc.value.message.startswith('Encrypted archive entry')

    def test_oversized_entry_skipped_before_extraction(self, service):
        big = JPEG + b'\x00' * 4096
        data = make_zip({'a.jpg': JPEG, 'huge.jpg': big}, compression=zipfile.ZIP_DEFLATED)

        with patch.object(config, 'MAX_ENTRY_BYTES', 1024):
            result = service.ingest_batch(data, 'asr', _defaults(), filename='images.zip')

        assert len(result.created) == 1
        assert result.errors[0].item == 'huge.jpg'
        assert result.errors[0].reason.startswith('Archive entry too large')

    def test_unexpected_entry_failure_is_per_entry(self, service):
        data = make_zip({'a.jpg': JPEG, 'b.jpg': JPEG})
        original_upload = service.ingestion._upload

        def upload(task_type, creator_id, name, blob):
            if name == 'a.jpg':
                raise ValueError('unexpected')
            return original_upload(task_type, creator_id, name, blob)

        with patch.object(service.ingestion, '_upload', side_effect=upload):
            result = service.ingest_batch(data, 'asr', _defaults(), filename='images.zip')

        assert len(result.created) == 1
        assert [str(e) for e in result.errors] == ['a.jpg: unexpected']


class TestChunkedWrites:
    """Tests for chunking and the item-by-item fallback."""

    def test_default_chunk_size(self, service):
        assert isinstance(service.ingestion, IngestionPipeline)
        assert service.ingestion.chunk_size == 50

    def test_rows_written_in_chunks(self, store, storage):
        service = CrowdService(store, storage, chunk_size=2)
        data = ('source_text\n' + ''.join(f'Line {i}\n' for i in range(5))).encode('utf-8')

        with patch.object(store, 'batch_put_tasks', wraps=store.batch_put_tasks) as batch_put:
            result = service.ingest_batch(data, 'translation', _defaults(), filename='batch.csv')

        assert len(result.created) == 5
        assert [len(call.args[0]) for call in batch_put.call_args_list] == [2, 2, 1]

    def test_failed_chunk_retried_per_item(self, store, storage):
        service = CrowdService(store, storage, chunk_size=10)
        data = b'source_text\nOne\nTwo\nThree\n'
        original_insert = service.tasks.insert

        def insert(task):
            if task.content.source_text == 'Two':
                raise RuntimeError('throttled')
            original_insert(task)

        with patch.object(store, 'batch_put_tasks', return_value=False), \
                patch.object(service.tasks, 'insert', side_effect=insert):
            result = service.ingest_batch(data, 'translation', _defaults(), filename='batch.csv')

        assert len(result.created) == 2
        assert [str(e) for e in result.errors] == ['row 2: throttled']
        assert sorted(t.content.source_text for t in store.query_tasks()) == ['One', 'Three']

    def test_chunk_write_exception_falls_back_to_items(self, store, storage):
        service = CrowdService(store, storage, chunk_size=10)
        error = EndpointConnectionError(endpoint_url='https://dynamodb.test')

        with patch.object(store, 'batch_put_tasks', side_effect=error):
            result = service.ingest_batch(b'source_text\nOne\nTwo\n', 'translation', _defaults(),
                                          filename='batch.csv')

        assert result.summary() == '2 created, 0 errors'
        assert sorted(t.content.source_text for t in store.query_tasks()) == ['One', 'Two']

    def test_dynamo_connection_failure_retries_per_item(self, storage):
        dynamodb = MagicMock()
        writer = dynamodb.Table.return_value.batch_writer.return_value.__enter__.return_value
        writer.put_item.side_effect = EndpointConnectionError(endpoint_url='https://dynamodb.test')
        service = CrowdService(DynamoStore(dynamodb=dynamodb, tables=DYNAMO_TABLES), storage)

        result = service.ingest_batch(b'source_text\nOne\nTwo\n', 'translation', _defaults(),
                                      filename='batch.csv')

        assert result.summary() == '2 created, 0 errors'
        calls = dynamodb.meta.client.transact_write_items.call_args_list
        assert len(calls) == 2
        # each retried task is written together with its creation history entry
        tables = [[list(action.values())[0]['TableName'] for action in c.kwargs['TransactItems']] for c in calls]
        assert tables == [['test-tasks', 'test-task-history']] * 2


class TestDetectSourceKind:
    """Tests for choosing the parser."""

    def test_by_extension(self):
        assert detect_source_kind('a.CSV', b'') == 'csv'
        assert detect_source_kind('a.tsv', b'') == 'csv'
        assert detect_source_kind('a.xlsx', b'') == 'excel'
        assert detect_source_kind('a.zip', b'') == 'archive'

    def test_legacy_xls_rejected(self):
        with pytest.raises(SchemaError):
            detect_source_kind('a.xls', b'')

    def test_sniffs_without_filename(self):
        assert detect_source_kind(None, make_zip({'a.jpg': JPEG})) == 'archive'
        assert detect_source_kind(None, b'source_text\nHi\n') == 'csv'
