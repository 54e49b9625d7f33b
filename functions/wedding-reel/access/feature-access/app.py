from aws_lambda_powertools import Logger

import constants
import entitlements
from common_response_utils import (
    exception_response,
    get_request_origin,
    is_preflight,
    options_response,
    parse_request_body,
    resolve_user_id,
    success_response,
)
from dynamodb_helper import DynamoDBHelper
from request_schemas import FeatureAccessRequest

logger = Logger(service=f"{constants.SERVICE_NAME}-feature-access")

subscriptions_db = DynamoDBHelper(constants.SUBSCRIPTIONS_TABLE, constants.AWS_REGION)
purchases_db = DynamoDBHelper(constants.PURCHASES_TABLE, constants.AWS_REGION)


def lambda_handler(event, context):
    origin = get_request_origin(event)
    if is_preflight(event):
        return options_response(origin)

    try:
        request = FeatureAccessRequest.model_validate(parse_request_body(event))
        user_id = resolve_user_id(event, request.userId)

        snapshot = entitlements.load_snapshot(user_id, subscriptions_db, purchases_db)
        access = entitlements.resolve(request.feature, request.projectId, snapshot)
        logger.info(f"Feature {request.feature} for user {user_id or 'anonymous'}: "
                    f"tier={access.tier.value}, required={access.required_tier.value}, granted={access.has_access}")

        return success_response(
            {**access.to_dict(), "canCreateProject": snapshot.can_create_project()},
            message=f"Resolved access to {request.feature}",
            origin=origin,
        )

    except Exception as e:
        logger.error(f"Error in feature-access: {e}", exc_info=True)
        return exception_response(e, origin)
