"""
Review Contribution Handler.
POST /reviewer/contributions/{contributionId}/review
Body: { "approved": true|false, "comment": "..." }   (comment required when rejecting)
"""
from langcrowd.auth import get_user_sub, is_reviewer
from langcrowd.errors import LangcrowdError
from langcrowd.logging import logger, log_event
from langcrowd.service import get_service
from langcrowd.utils import error_response, format_response, get_path_param, parse_body


def handler(event, context):
    log_event(event)

    reviewer_id = get_user_sub(event)
    if not reviewer_id:
        return format_response(401, {'error': 'Unauthorized'})
    if not is_reviewer(event):
        return format_response(403, {'error': 'Only reviewers can review contributions'})

    contribution_id = get_path_param(event, 'contributionId')
    body = parse_body(event)
    approved = body.get('approved')
    if not contribution_id or not isinstance(approved, bool):
        return format_response(400, {'error': 'Missing contributionId or approved flag'})

    try:
        validation = get_service().review_contribution(
            contribution_id, reviewer_id, approved, body.get('comment')
        )
    except LangcrowdError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error reviewing contribution {contribution_id}: {e}")
        return format_response(500, {'error': 'Internal server error'})

    return format_response(200, {
        'message': 'Contribution approved' if approved else 'Contribution rejected',
        'validationId': validation.validation_id,
    })
