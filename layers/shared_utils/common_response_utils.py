import json
import logging
import traceback
from decimal import Decimal

from pydantic import ValidationError as PydanticValidationError

import constants
from exceptions import AccessDeniedError, NotFoundError, ValidationError

# Set up structured logger
logger = logging.getLogger()
if not logger.handlers:
    logger.setLevel(logging.INFO)
    handler = logging.StreamHandler()
    formatter = logging.Formatter(
        '{"level": "%(levelname)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

ENV = constants.ENVIRONMENT

class DecimalEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Decimal):
            if obj % 1 == 0:
                return int(obj)
            return float(obj)
        if isinstance(obj, set):
            return list(obj)
        return super().default(obj)

def get_request_origin(event):
    """Extract the origin from the Lambda event"""
    headers = event.get('headers', {}) or {}
    # API Gateway might have different header casing
    origin = headers.get('Origin') or headers.get('origin')
    return origin

def parse_request_body(event) -> dict:
    """Decode the JSON body of an API Gateway proxy event.

    Direct invocations pass the payload itself, so dicts without a
    ``body`` key are returned as-is.
    """
    if not isinstance(event, dict):
        return {}
    if 'body' not in event:
        return {k: v for k, v in event.items() if k not in ('headers', 'httpMethod', 'requestContext')}
    body = event.get('body')
    if body is None or body == '':
        return {}
    if isinstance(body, dict):
        return body
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}

def get_caller_id(event):
    """Return the authenticated user id from the API Gateway authorizer, if any."""
    authorizer = ((event or {}).get('requestContext') or {}).get('authorizer') or {}
    claims = authorizer.get('claims') or authorizer.get('jwt', {}).get('claims') or {}
    return claims.get('sub') or authorizer.get('principalId')

def is_api_gateway_event(event) -> bool:
    return isinstance(event, dict) and ('requestContext' in event or 'httpMethod' in event)

def resolve_user_id(event, claimed_user_id=None):
    """Authorizer identity for API Gateway calls; direct invocations may name the user in the payload."""
    caller_id = get_caller_id(event)
    if caller_id or is_api_gateway_event(event):
        return caller_id
    return claimed_user_id

def get_caller_email(event):
    authorizer = ((event or {}).get('requestContext') or {}).get('authorizer') or {}
    claims = authorizer.get('claims') or authorizer.get('jwt', {}).get('claims') or {}
    return claims.get('email')

def is_preflight(event) -> bool:
    return isinstance(event, dict) and event.get('httpMethod') == 'OPTIONS'

def get_cors_headers(origin=None):
    """Get CORS headers for responses"""
    allowed_origins = list(constants.ALLOWED_ORIGINS)

    # Check if the request origin is in our allowed list
    cors_origin = allowed_origins[0] if allowed_origins else "http://localhost:5173"
    if origin and origin in allowed_origins:
        cors_origin = origin
    elif ENV == "prod" and origin:
        # In production, be more restrictive - only allow specific origins
        cors_origin = "null"

    return {
        "Content-Type": "application/json",
        "Access-Control-Allow-Origin": cors_origin,
        "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
        "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Max-Age": "86400"  # Cache preflight for 24 hours
    }

def api_response(status_code, body, origin=None):
    """Base response wrapper with CORS headers"""
    return {
        "statusCode": status_code,
        "headers": get_cors_headers(origin),
        "body": json.dumps(body, cls=DecimalEncoder)
    }

def error_response(status_code, error, origin=None, **fields):
    return api_response(status_code, {"success": False, "error": error, **fields}, origin=origin)

def success_response(data=None, message="Request completed successfully", origin=None):
    logger.info(f"API Success: {message}")
    return api_response(200, {"success": True, **(data or {})}, origin=origin)

def bad_request_response(user_message="Invalid request", dev_message=None, origin=None):
    logger.warning(f"Bad Request: {user_message} | Details: {dev_message}")
    return error_response(400, user_message, origin=origin)

def forbidden_response(user_message="Access denied", origin=None, **fields):
    logger.warning(f"Forbidden: {user_message}")
    return error_response(403, user_message, origin=origin, **fields)

def not_found_response(user_message="The requested resource was not found", dev_message=None, origin=None):
    logger.warning(f"Not Found: {user_message} | Details: {dev_message}")
    return error_response(404, user_message, origin=origin)

def too_many_requests_response(user_message="Too many requests. Please try again shortly.", origin=None):
    logger.warning(f"Rate limited: {user_message}")
    return error_response(429, user_message, origin=origin)

def server_error_response(user_message="Oops! Something went wrong.", exception=None, origin=None):
    trace = traceback.format_exc() if exception else "Unknown server error"
    logger.error(f"Server Error: {user_message} | Exception: {trace}")
    if exception is not None and ENV != "prod":
        user_message = str(exception) or user_message
    return error_response(500, user_message, origin=origin)

def exception_response(exception, origin=None):
    """Map an exception raised inside a handler onto its HTTP response."""
    if isinstance(exception, PydanticValidationError):
        first = exception.errors()[0] if exception.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid request")
        return bad_request_response(f"Invalid {field}: {message}" if field else message, dev_message=str(exception), origin=origin)
    if isinstance(exception, ValidationError):
        return bad_request_response(str(exception), origin=origin)
    if isinstance(exception, AccessDeniedError):
        return forbidden_response(str(exception), origin=origin)
    if isinstance(exception, NotFoundError):
        return not_found_response(str(exception), origin=origin)
    return server_error_response(exception=exception, origin=origin)

def options_response(origin=None):
    """Handle OPTIONS preflight requests"""
    return {
        "statusCode": 200,
        "headers": get_cors_headers(origin),
        "body": json.dumps({"message": "OK"})
    }
