"""
Tests for task creation, listing and projects.
"""
import pytest
from unittest.mock import patch

from langcrowd.errors import NotFound, SchemaError
from langcrowd.models import Priority, TaskStatus, TaskType


class TestCreateTask:
    """Tests for TaskStore.create via the service."""

    def test_created_task_is_pending_with_content(self, service, translation_task):
        task = service.get_task(translation_task)

        assert task.status == TaskStatus.PENDING
        assert task.task_type == TaskType.TRANSLATION
        assert task.priority == Priority.HIGH
        assert task.content.source_text == 'Good morning'
        assert task.assignee_id is None

    def test_missing_priority_defaults_to_medium(self, service, transcription_task):
        assert service.get_task(transcription_task).priority == Priority.MEDIUM

    def test_invalid_content_writes_nothing(self, service, store):
        with pytest.raises(SchemaError):
            service.create_task('tts', 'Ga', 'low', {'task_title': 'No prompt'}, 'creator-1')

        assert store.query_tasks() == []

    def test_unknown_priority_rejected(self, service):
        with pytest.raises(SchemaError):
            service.create_task('tts', 'Ga', 'urgent', {'text_prompt': 'Hi'}, 'creator-1')

    def test_language_required(self, service):
        with pytest.raises(SchemaError):
            service.create_task('tts', ' ', 'low', {'text_prompt': 'Hi'}, 'creator-1')

    def test_get_unknown_task(self, service):
        with pytest.raises(NotFound):
            service.get_task('missing')


class TestProjects:
    """Tests for project grouping."""

    def test_task_in_matching_project(self, service):
        project = service.create_project('Akan news', 'translation', 'English', 'owner-1', ['Akan', ''])
        task_id = service.create_task(
            'translation', 'Akan', None,
            {'source_text': 'Hello', 'source_language': 'English'}, 'owner-1',
            project_id=project.project_id,
        )

        assert project.target_languages == frozenset({'Akan'})
        assert service.get_task(task_id).project_id == project.project_id

    def test_task_type_must_match_project(self, service):
        project = service.create_project('Voices', 'tts', 'English', 'owner-1')

        with pytest.raises(SchemaError):
            service.create_task('transcription', 'Ga', None, {'audio_url': 'https://a/b.mp3'},
                                'owner-1', project_id=project.project_id)

    def test_transcription_project_accepts_asr(self, service):
        project = service.create_project('Pipeline', 'transcription', 'Twi', 'owner-1')
        task_id = service.create_task(
            'asr', 'Twi', None, {'task_title': 'Market', 'task_description': 'Describe it'},
            'owner-1', project_id=project.project_id,
        )

        assert service.get_task(task_id).task_type == TaskType.ASR

    def test_unknown_project(self, service):
        with pytest.raises(NotFound):
            service.create_task('tts', 'Ga', None, {'text_prompt': 'Hi'}, 'owner-1', project_id='nope')

    def test_unknown_project_type(self, service):
        with pytest.raises(SchemaError):
            service.create_project('Bad', 'video', 'English', 'owner-1')


class TestListTasks:
    """Tests for list filters."""

    def test_filters_by_type_language_and_status(self, service, translation_task, transcription_task):
        assert [t.task_id for t in service.list_tasks(task_type='transcription')] == [transcription_task]
        assert [t.task_id for t in service.list_tasks(language='Akan')] == [translation_task]
        assert len(service.list_tasks(status='pending')) == 2
        assert service.list_tasks(status='completed') == []

    def test_unknown_status_filter(self, service):
        with pytest.raises(SchemaError):
            service.list_tasks(status='done')

    def test_list_projects_by_owner(self, service):
        mine = service.create_project('Mine', 'tts', 'English', 'owner-1')
        service.create_project('Theirs', 'tts', 'English', 'owner-2')

        assert [p.project_id for p in service.list_projects('owner-1')] == [mine.project_id]
        assert len(service.list_projects()) == 2


class TestBuildService:
    """Tests for backend selection."""

    def test_memory_backend(self):
        from langcrowd import service as service_module
        from langcrowd.memory_store import InMemoryStore

        with patch.object(service_module.config, 'STORE_BACKEND', 'memory'), \
                patch.object(service_module, 'S3Storage') as storage_cls:
            built = service_module.build_service()

        assert isinstance(built.store, InMemoryStore)
        assert built.storage is storage_cls.return_value

    def test_unknown_backend(self):
        from langcrowd import service as service_module

        with patch.object(service_module.config, 'STORE_BACKEND', 'sqlite'):
            with pytest.raises(ValueError):
                service_module.build_service()
