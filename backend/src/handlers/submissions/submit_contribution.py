"""
Submit Contribution Handler.
POST /worker/tasks/{taskId}/submit
Body: { "payload": { "translation_text": "..." } }
"""
from langcrowd.auth import get_user_sub
from langcrowd.errors import LangcrowdError
from langcrowd.logging import logger, log_event
from langcrowd.service import get_service
from langcrowd.utils import error_response, format_response, get_path_param, parse_body


def handler(event, context):
    log_event(event)

    worker_id = get_user_sub(event)
    if not worker_id:
        return format_response(401, {'error': 'Unauthorized'})

    task_id = get_path_param(event, 'taskId')
    payload = parse_body(event).get('payload')
    if not task_id or payload is None:
        return format_response(400, {'error': 'Missing taskId or payload'})

    try:
        contribution = get_service().submit_contribution(task_id, worker_id, payload)
    except LangcrowdError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error submitting contribution for task {task_id}: {e}")
        return format_response(500, {'error': 'Internal server error'})

    return format_response(201, {
        'message': 'Contribution submitted for review',
        'contributionId': contribution.contribution_id,
        'status': contribution.status.value,
    })
