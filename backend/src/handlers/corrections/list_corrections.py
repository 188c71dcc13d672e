"""
Corrections Handler.
GET /worker/corrections?language=&sourceLanguage=     rejected contributions, newest first
GET /worker/corrections/{contributionId}              one correction, ready to resubmit
"""
from langcrowd.auth import get_user_sub
from langcrowd.errors import LangcrowdError
from langcrowd.logging import logger, log_event
from langcrowd.service import get_service
from langcrowd.utils import error_response, format_response, get_path_param, get_query_param


def handler(event, context):
    log_event(event)

    worker_id = get_user_sub(event)
    if not worker_id:
        return format_response(401, {'error': 'Unauthorized'})

    contribution_id = get_path_param(event, 'contributionId')
    service = get_service()

    try:
        if contribution_id:
            view = service.load_for_resubmission(contribution_id, worker_id)
            return format_response(200, view.to_dict())

        corrections = service.list_corrections(
            worker_id,
            language=get_query_param(event, 'language'),
            source_language=get_query_param(event, 'sourceLanguage'),
        )
    except LangcrowdError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error loading corrections for {worker_id}: {e}")
        return format_response(500, {'error': 'Internal server error'})

    return format_response(200, {'corrections': [c.to_dict() for c in corrections]})
