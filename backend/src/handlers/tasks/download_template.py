"""
Download Template Handler.
GET /tasks/template?taskType=translation&format=csv|xlsx&mode=direct|pipeline
"""
from langcrowd.errors import LangcrowdError
from langcrowd.logging import logger, log_event
from langcrowd.service import get_service
from langcrowd.templates import template_filename
from langcrowd.utils import error_response, format_file_response, format_response, get_query_param

CONTENT_TYPES = {
    'csv': 'text/csv; charset=utf-8',
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
}


def handler(event, context):
    log_event(event)

    task_type = get_query_param(event, 'taskType')
    fmt = get_query_param(event, 'format', 'csv')
    if not task_type:
        return format_response(400, {'error': 'Missing taskType'})

    try:
        data = get_service().download_template(task_type, fmt, get_query_param(event, 'mode', 'direct'))
        filename = template_filename(task_type, fmt)
    except LangcrowdError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error building template: {e}")
        return format_response(500, {'error': 'Internal server error'})

    return format_file_response(data, CONTENT_TYPES[fmt], filename)
