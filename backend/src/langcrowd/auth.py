"""
Authentication utilities for extracting user info from Cognito tokens.
"""
from typing import Optional


def get_user_sub(event: dict) -> Optional[str]:
    """
    Extract user sub (unique ID) from Cognito authorizer claims.

    Args:
        event: API Gateway Lambda proxy event

    Returns:
        User sub string or None if not authenticated
    """
    try:
        return event['requestContext']['authorizer']['claims']['sub']
    except (KeyError, TypeError):
        return None


def get_user_groups(event: dict) -> list:
    """Extract user groups (admin, creator, reviewer, contributor) from Cognito claims."""
    try:
        groups = event['requestContext']['authorizer']['claims'].get('cognito:groups', '')
        if isinstance(groups, str):
            return groups.split(',') if groups else []
        return groups or []
    except (KeyError, TypeError):
        return []


def is_creator(event: dict) -> bool:
    """Task creators upload batches and projects; admins may too."""
    return bool({'creator', 'admin'} & set(get_user_groups(event)))


def is_reviewer(event: dict) -> bool:
    """Reviewers validate contributions; admins may too."""
    return bool({'reviewer', 'admin'} & set(get_user_groups(event)))
