"""
Create Task Handler.
POST /tasks
Body: { "type": "translation", "language": "Akan", "priority": "high",
        "content": { "source_text": "...", "source_language": "English" },
        "projectId": "..." }
"""
from langcrowd.auth import get_user_sub, is_creator
from langcrowd.errors import LangcrowdError
from langcrowd.logging import logger, log_event
from langcrowd.service import get_service
from langcrowd.utils import error_response, format_response, parse_body


def handler(event, context):
    log_event(event)

    creator_id = get_user_sub(event)
    if not creator_id:
        return format_response(401, {'error': 'Unauthorized'})
    if not is_creator(event):
        return format_response(403, {'error': 'Only task creators can create tasks'})

    body = parse_body(event)
    task_type = body.get('type')
    content = body.get('content')
    if not task_type or content is None:
        return format_response(400, {'error': 'Missing type or content'})

    try:
        task_id = get_service().create_task(
            task_type,
            body.get('language'),
            body.get('priority'),
            content,
            creator_id,
            project_id=body.get('projectId'),
        )
    except LangcrowdError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error creating task: {e}")
        return format_response(500, {'error': 'Internal server error'})

    return format_response(201, {'message': 'Task created', 'taskId': task_id})
