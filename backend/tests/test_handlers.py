"""
Tests for the API Gateway Lambda handlers over an in-memory service.
"""
import base64
import json
from unittest.mock import patch

import pytest

from conftest import JPEG, make_zip, worker_event


def _body(response):
    return json.loads(response['body'])


class TestCreateAndListTasks:
    """Tests for POST /tasks and GET /tasks."""

    def test_create_task(self, service):
        from handlers.tasks.create_task import handler

        event = worker_event('creator-1', 'creator', body=json.dumps({
            'type': 'tts', 'language': 'Ga', 'content': {'text_prompt': 'Akwaaba'},
        }))
        with patch('handlers.tasks.create_task.get_service', return_value=service):
            response = handler(event, None)

        assert response['statusCode'] == 201
        assert response['headers']['Access-Control-Allow-Origin'] == '*'
        task_id = _body(response)['taskId']
        assert service.get_task(task_id).content.text_prompt == 'Akwaaba'

    def test_create_task_schema_error(self, service):
        from handlers.tasks.create_task import handler

        event = worker_event('creator-1', 'creator', body=json.dumps({
            'type': 'translation', 'language': 'Akan', 'content': {'source_text': 'Hi'},
        }))
        with patch('handlers.tasks.create_task.get_service', return_value=service):
            response = handler(event, None)

        assert response['statusCode'] == 400
        assert 'source_language' in _body(response)['error']

    def test_create_task_requires_creator_group(self, service):
        from handlers.tasks.create_task import handler

        event = worker_event('worker-1', 'contributor', body=json.dumps({'type': 'tts', 'content': {}}))
        with patch('handlers.tasks.create_task.get_service', return_value=service):
            assert handler(event, None)['statusCode'] == 403

    def test_unauthenticated(self, service):
        from handlers.tasks.list_tasks import handler

        with patch('handlers.tasks.list_tasks.get_service', return_value=service):
            assert handler({'queryStringParameters': None}, None)['statusCode'] == 401

    def test_list_tasks(self, service, translation_task):
        from handlers.tasks.list_tasks import handler

        event = worker_event('worker-1', query={'status': 'pending', 'language': 'Akan'})
        with patch('handlers.tasks.list_tasks.get_service', return_value=service):
            response = handler(event, None)

        assert response['statusCode'] == 200
        assert [t['taskId'] for t in _body(response)['tasks']] == [translation_task]


class TestIngestBatch:
    """Tests for POST /tasks/batch."""

    def test_base64_archive_upload(self, service):
        from handlers.tasks.ingest_batch import handler

        data = make_zip({'a.jpg': JPEG, 'b.jpg': JPEG})
        event = worker_event(
            'creator-1', 'admin',
            body=base64.b64encode(data).decode('ascii'),
            query={'taskType': 'asr', 'language': 'Twi', 'filename': 'images.zip'},
            isBase64Encoded=True,
        )
        with patch('handlers.tasks.ingest_batch.get_service', return_value=service):
            response = handler(event, None)

        body = _body(response)
        assert response['statusCode'] == 201
        assert body['summary'] == '2 created, 0 errors'
        assert len(body['created']) == 2

    def test_structural_error_is_400(self, service):
        from handlers.tasks.ingest_batch import handler

        event = worker_event(
            'creator-1', 'creator', body='title\nHello\n',
            query={'taskType': 'translation', 'language': 'Akan', 'filename': 'b.csv'},
        )
        with patch('handlers.tasks.ingest_batch.get_service', return_value=service):
            response = handler(event, None)

        assert response['statusCode'] == 400
        assert _body(response)['aborted'] is True

    def test_invalid_base64(self, service):
        from handlers.tasks.ingest_batch import handler

        event = worker_event('creator-1', 'creator', body='***', query={'taskType': 'asr'}, isBase64Encoded=True)
        with patch('handlers.tasks.ingest_batch.get_service', return_value=service):
            assert handler(event, None)['statusCode'] == 400


class TestDownloadTemplate:
    """Tests for GET /tasks/template."""

    def test_csv_template(self, service):
        from handlers.tasks.download_template import handler

        event = worker_event('creator-1', query={'taskType': 'tts'})
        with patch('handlers.tasks.download_template.get_service', return_value=service):
            response = handler(event, None)

        assert response['isBase64Encoded'] is True
        assert 'tts_template.csv' in response['headers']['Content-Disposition']
        assert base64.b64decode(response['body']).startswith(b'"text_to_speak"')

    def test_asr_has_no_template(self, service):
        from handlers.tasks.download_template import handler

        event = worker_event('creator-1', query={'taskType': 'asr'})
        with patch('handlers.tasks.download_template.get_service', return_value=service):
            assert handler(event, None)['statusCode'] == 400


class TestContributionFlow:
    """Submit, review, list corrections and resubmit through the handlers."""

    @pytest.fixture
    def handlers(self, service):
        from handlers.corrections import list_corrections
        from handlers.qc import review_contribution
        from handlers.submissions import resubmit_contribution, submit_contribution

        modules = (list_corrections, review_contribution, resubmit_contribution, submit_contribution)
        patches = [patch.object(m, 'get_service', return_value=service) for m in modules]
        for p in patches:
            p.start()
        yield {m.__name__.rsplit('.', 1)[-1]: m.handler for m in modules}
        for p in patches:
            p.stop()

    def test_full_correction_loop(self, handlers, translation_task):
        submitted = handlers['submit_contribution'](worker_event(
            'worker-1', body=json.dumps({'payload': {'translation_text': 'Maakye'}}),
            path={'taskId': translation_task}), None)
        contribution_id = _body(submitted)['contributionId']
        assert submitted['statusCode'] == 201

        rejected = handlers['review_contribution'](worker_event(
            'reviewer-1', 'reviewer', body=json.dumps({'approved': False, 'comment': 'Too informal'}),
            path={'contributionId': contribution_id}), None)
        assert rejected['statusCode'] == 200

        listed = _body(handlers['list_corrections'](worker_event('worker-1'), None))
        assert [c['latestFeedback'] for c in listed['corrections']] == ['Too informal']

        loaded = handlers['list_corrections'](worker_event('worker-1', path={'contributionId': contribution_id}), None)
        assert _body(loaded)['priorPayload'] == {'translation_text': 'Maakye'}

        resubmitted = handlers['resubmit_contribution'](worker_event(
            'worker-1', body=json.dumps({'payload': {'translation_text': 'Mema wo akye'}}),
            path={'contributionId': contribution_id}), None)
        assert _body(resubmitted)['status'] == 'pending_validation'

    def test_reject_without_comment_is_400(self, handlers, translation_task):
        submitted = handlers['submit_contribution'](worker_event(
            'worker-1', body=json.dumps({'payload': {'translation_text': 'Maakye'}}),
            path={'taskId': translation_task}), None)

        response = handlers['review_contribution'](worker_event(
            'reviewer-1', 'reviewer', body=json.dumps({'approved': False}),
            path={'contributionId': _body(submitted)['contributionId']}), None)

        assert response['statusCode'] == 400

    def test_second_claim_is_409(self, handlers, translation_task):
        for worker, expected in (('worker-1', 201), ('worker-2', 409)):
            response = handlers['submit_contribution'](worker_event(
                worker, body=json.dumps({'payload': {'translation_text': 'Maakye'}}),
                path={'taskId': translation_task}), None)
            assert response['statusCode'] == expected

    def test_review_requires_reviewer_group(self, handlers):
        response = handlers['review_contribution'](worker_event(
            'worker-1', 'contributor', body=json.dumps({'approved': True}),
            path={'contributionId': 'c-1'}), None)

        assert response['statusCode'] == 403

    def test_unknown_correction_is_404(self, handlers):
        response = handlers['list_corrections'](worker_event('worker-1', path={'contributionId': 'nope'}), None)

        assert response['statusCode'] == 404
