from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Key

import constants
from common_response_utils import (
    exception_response,
    get_request_origin,
    is_preflight,
    options_response,
    parse_request_body,
    success_response,
)
from dynamodb_helper import DynamoDBHelper
from exceptions import AccessDeniedError, NotFoundError, ValidationError
from upload_validation import validate_project_qr_code

logger = Logger(service=f"{constants.SERVICE_NAME}-guest-project")

projects_db = DynamoDBHelper(constants.PROJECTS_TABLE, constants.AWS_REGION)

# Only these fields are ever shown to guests
PUBLIC_PROJECT_FIELDS = ("id", "name", "bride_name", "groom_name", "wedding_date", "location", "privacy_settings")


def _qr_code_from_event(event) -> str:
    path_params = event.get("pathParameters") or {}
    query_params = event.get("queryStringParameters") or {}
    return path_params.get("qrCode") or query_params.get("qrCode") or parse_request_body(event).get("qrCode") or ""


def lambda_handler(event, context):
    origin = get_request_origin(event)
    if is_preflight(event):
        return options_response(origin)

    try:
        qr_code = _qr_code_from_event(event)
        if not validate_project_qr_code(qr_code):
            raise ValidationError("Invalid QR code")

        projects = projects_db.query(Key("qr_code").eq(qr_code), index_name=constants.QR_CODE_INDEX, limit=1)
        if not projects or projects[0].get("archived_at"):
            raise NotFoundError("Event not found")
        project = projects[0]

        privacy = project.get("privacy_settings") or {}
        if privacy.get("public_qr") is False or privacy.get("guest_upload") is False:
            raise AccessDeniedError("Guest access is disabled for this event")

        logger.info(f"Resolved guest QR code to project {project['id']}")
        return success_response(
            {"project": {field: project.get(field) for field in PUBLIC_PROJECT_FIELDS}},
            origin=origin,
        )

    except Exception as e:
        logger.error(f"Error in guest-project: {e}", exc_info=True)
        return exception_response(e, origin)
