"""
List Tasks Handler.
GET /tasks?type=&language=&status=&projectId=
"""
from langcrowd.auth import get_user_sub
from langcrowd.errors import LangcrowdError
from langcrowd.logging import logger, log_event
from langcrowd.service import get_service
from langcrowd.utils import error_response, format_response, get_query_param


def handler(event, context):
    log_event(event)

    if not get_user_sub(event):
        return format_response(401, {'error': 'Unauthorized'})

    try:
        tasks = get_service().list_tasks(
            task_type=get_query_param(event, 'type'),
            language=get_query_param(event, 'language'),
            status=get_query_param(event, 'status'),
            project_id=get_query_param(event, 'projectId'),
        )
    except LangcrowdError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error listing tasks: {e}")
        return format_response(500, {'error': 'Internal server error'})

    return format_response(200, {'tasks': [task.to_item() for task in tasks]})
