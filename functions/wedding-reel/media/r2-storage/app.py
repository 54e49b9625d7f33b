import hashlib
import uuid
from datetime import datetime, timezone

from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

import constants
import object_storage
from common_response_utils import (
    bad_request_response,
    exception_response,
    get_request_origin,
    is_preflight,
    options_response,
    parse_request_body,
    success_response,
)
from dynamodb_helper import DynamoDBHelper
from exceptions import DynamoDBError, ExternalServiceError, ValidationError
from request_schemas import ObjectStorageRequest
from upload_validation import UploadCandidate, check_file, sanitize_filename

logger = Logger(service=f"{constants.SERVICE_NAME}-r2-storage")

videos_db = DynamoDBHelper(constants.VIDEOS_TABLE, constants.AWS_REGION)

# R2 rejects these with specific status codes; map them onto readable messages
R2_ERROR_MESSAGES = {
    "InvalidAccessKeyId": "Cloudflare authentication failed. Please check your access keys.",
    "SignatureDoesNotMatch": "Cloudflare authentication failed. Please check your access keys.",
    "AccessDenied": "Access forbidden. Please check your access key permissions and bucket name.",
    "NoSuchBucket": "R2 bucket not found. Please check your bucket name and account ID.",
}


def _storage_error(e: Exception) -> ExternalServiceError:
    if isinstance(e, ClientError):
        code = e.response.get("Error", {}).get("Code", "")
        status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        message = R2_ERROR_MESSAGES.get(code, f"R2 upload failed: {status} {code}")
        return ExternalServiceError(message, status)
    return ExternalServiceError(f"R2 upload failed: {e}")


def upload_object(client, settings: object_storage.R2Settings, request: ObjectStorageRequest) -> dict:
    """Write the file to R2, then record it; the object is removed if recording fails."""
    try:
        content = request.content_bytes()
    except (ValueError, TypeError) as e:
        raise ValidationError(f"Invalid fileContent: {e}")
    file_name = sanitize_filename(request.fileName)

    if request.contentType:
        error = check_file(UploadCandidate(request.fileName, request.contentType, len(content)))
        if error:
            raise ValidationError(error)

    key = object_storage.object_key(request.projectId, file_name)
    content_sha256 = hashlib.sha256(content).hexdigest()
    logger.info(f"Uploading {len(content)} bytes to R2 with key {key} (sha256 {content_sha256})")

    try:
        client.put_object(
            Bucket=settings.bucket,
            Key=key,
            Body=content,
            ContentType=request.contentType or "application/octet-stream",
            Metadata={"sha256": content_sha256},
        )
    except (ClientError, BotoCoreError) as e:
        logger.error(f"R2 upload failed for {key}: {e}")
        raise _storage_error(e)

    try:
        videos_db.put_item({
            "id": str(uuid.uuid4()),
            "name": request.fileName,
            "file_path": f"r2://{key}",
            "r2_object_key": key,
            "project_id": request.projectId,
            "size": len(content),
            "content_sha256": content_sha256,
            "created_at": datetime.now(timezone.utc).isoformat(),
        })
    except DynamoDBError:
        logger.error(f"Failed to record {key}, deleting the uploaded object")
        try:
            client.delete_object(Bucket=settings.bucket, Key=key)
        except (ClientError, BotoCoreError) as cleanup_err:
            logger.error(f"CRITICAL: Failed to delete orphaned R2 object {key}: {cleanup_err}")
        raise

    return {"objectKey": key, "publicUrl": object_storage.public_url(settings, key)}


def signed_url(client, settings: object_storage.R2Settings, request: ObjectStorageRequest) -> dict:
    key = object_storage.object_key(request.projectId, sanitize_filename(request.fileName))
    url = object_storage.presigned_get_url(client, settings, key)
    logger.info(f"Generated signed URL for {key}")
    return {"signedUrl": url, "expiresIn": constants.SIGNED_URL_EXPIRES_IN}


ACTIONS = {
    "upload": upload_object,
    "get_signed_url": signed_url,
}


def lambda_handler(event, context):
    origin = get_request_origin(event)
    if is_preflight(event):
        return options_response(origin)

    try:
        request = ObjectStorageRequest.model_validate(parse_request_body(event))
        logger.info(f"r2-storage request: action={request.action}, project={request.projectId}, file={request.fileName}")

        action = ACTIONS.get(request.action)
        if action is None:
            return bad_request_response("Invalid action", dev_message=request.action, origin=origin)

        settings = object_storage.R2Settings.from_env()
        client = object_storage.build_client(settings)
        result = action(client, settings, request)
        return success_response(result, message=f"r2-storage {request.action} completed", origin=origin)

    except Exception as e:
        logger.error(f"Error in r2-storage: {e}", exc_info=True)
        return exception_response(e, origin)
