"""
Ingest Task Batch Handler.
Creates many tasks from one uploaded CSV / Excel file or ZIP media archive.

POST /tasks/batch?taskType=translation&language=Akan&sourceLanguage=English
                 &priority=medium&projectId=...&mode=direct&filename=batch.csv
                 &batchName=...&transcriptionPrompt=...
Body: raw file bytes (base64-encoded by API Gateway for binary media types)
"""
from langcrowd.auth import get_user_sub, is_creator
from langcrowd.errors import LangcrowdError
from langcrowd.ingestion import IngestDefaults
from langcrowd.logging import logger, log_event
from langcrowd.service import get_service
from langcrowd.utils import decode_body, error_response, format_response, get_query_param


def handler(event, context):
    log_event(event)

    creator_id = get_user_sub(event)
    if not creator_id:
        return format_response(401, {'error': 'Unauthorized'})
    if not is_creator(event):
        return format_response(403, {'error': 'Only task creators can upload batches'})

    task_type = get_query_param(event, 'taskType')
    if not task_type:
        return format_response(400, {'error': 'Missing taskType'})

    defaults = IngestDefaults(
        creator_id=creator_id,
        language=get_query_param(event, 'language'),
        source_language=get_query_param(event, 'sourceLanguage'),
        priority=get_query_param(event, 'priority'),
        project_id=get_query_param(event, 'projectId'),
        batch_name=get_query_param(event, 'batchName'),
        transcription_prompt=get_query_param(event, 'transcriptionPrompt'),
    )

    try:
        data = decode_body(event)
        result = get_service().ingest_batch(
            data,
            task_type,
            defaults,
            filename=get_query_param(event, 'filename'),
            mode=get_query_param(event, 'mode', 'direct'),
        )
    except LangcrowdError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error ingesting batch: {e}")
        return format_response(500, {'error': 'Internal server error'})

    if result.aborted:
        return format_response(400, result.to_dict())

    # Items that failed are listed in errors; the rest were created
    return format_response(201 if result.created else 400, result.to_dict())
