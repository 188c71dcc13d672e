"""
Common utility functions for Lambda handlers.
"""
import base64
import binascii
import json
from decimal import Decimal
from typing import Any, Dict

from .errors import LangcrowdError, SchemaError
from .logging import logger


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal and set types from DynamoDB."""

    def default(self, o):
        if isinstance(o, Decimal):
            # Convert to int if it's a whole number, otherwise float
            if o % 1 == 0:
                return int(o)
            return float(o)
        if isinstance(o, (set, frozenset)):
            return sorted(o)
        return super().default(o)


def format_response(
    status_code: int,
    body: Any,
    headers: Dict[str, str] = None
) -> Dict[str, Any]:
    """
    Format a standard API Gateway response with CORS headers.

    Args:
        status_code: HTTP status code
        body: Response body (will be JSON serialized)
        headers: Additional headers to include

    Returns:
        API Gateway response dict
    """
    default_headers = {
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Credentials': True,
        'Content-Type': 'application/json'
    }

    if headers:
        default_headers.update(headers)

    return {
        'statusCode': status_code,
        'headers': default_headers,
        'body': json.dumps(body, cls=DecimalEncoder)
    }


def format_file_response(data: bytes, content_type: str, filename: str) -> Dict[str, Any]:
    """Binary download response (API Gateway decodes the base64 body)."""
    return {
        'statusCode': 200,
        'headers': {
            'Access-Control-Allow-Origin': '*',
            'Access-Control-Allow-Credentials': True,
            'Content-Type': content_type,
            'Content-Disposition': f'attachment; filename="{filename}"',
        },
        'body': base64.b64encode(data).decode('ascii'),
        'isBase64Encoded': True,
    }


def error_response(error: LangcrowdError) -> Dict[str, Any]:
    """Map an engine error to its HTTP status."""
    body = {'error': error.message}
    if getattr(error, 'reasons', None):
        body['reasons'] = error.reasons
    return format_response(error.status_code, body)


def parse_body(event: dict) -> dict:
    """
    Safely parse JSON body from API Gateway event.

    Args:
        event: API Gateway Lambda proxy event

    Returns:
        Parsed body dict or empty dict if invalid
    """
    try:
        body = event.get('body') or '{}'
        if isinstance(body, str):
            body = json.loads(body)
        return body if isinstance(body, dict) else {}
    except (json.JSONDecodeError, TypeError):
        return {}


def decode_body(event: dict) -> bytes:
    """
    Raw request body as bytes (file uploads).

    Raises:
        SchemaError: empty body or invalid base64
    """
    body = event.get('body')
    if not body:
        raise SchemaError('Request body is empty')

    if event.get('isBase64Encoded'):
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Invalid base64 body: {e}")
            raise SchemaError('Request body is not valid base64')

    return body.encode('utf-8') if isinstance(body, str) else bytes(body)


def get_path_param(event: dict, param_name: str) -> str:
    """Extract path parameter from event."""
    try:
        return event['pathParameters'][param_name]
    except (KeyError, TypeError):
        return None


def get_query_param(event: dict, param_name: str, default: str = None) -> str:
    """Extract query string parameter from event."""
    try:
        params = event.get('queryStringParameters') or {}
        return params.get(param_name, default)
    except (KeyError, TypeError):
        return default
