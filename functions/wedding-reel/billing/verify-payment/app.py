from datetime import datetime, timezone

from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Key

import constants
from common_response_utils import (
    api_response,
    exception_response,
    get_request_origin,
    is_preflight,
    options_response,
    parse_request_body,
)
from dynamodb_helper import DynamoDBHelper
from request_schemas import VerifyPaymentRequest
from stripe_api import StripeClient

logger = Logger(service=f"{constants.SERVICE_NAME}-verify-payment")

purchases_db = DynamoDBHelper(constants.PURCHASES_TABLE, constants.AWS_REGION)


def _stripe_client() -> StripeClient:
    return StripeClient()


def mark_purchases_paid(payment_intent_id: str) -> int:
    """Flip every purchase recorded for this payment intent to paid."""
    purchases = purchases_db.query(
        Key("stripe_payment_intent_id").eq(payment_intent_id),
        index_name=constants.PAYMENT_INTENT_INDEX,
    )
    updated_at = datetime.now(timezone.utc).isoformat()
    for purchase in purchases:
        purchases_db.update_item(
            {"user_id": purchase["user_id"], "id": purchase["id"]},
            {"status": "paid", "updated_at": updated_at},
        )
    return len(purchases)


def lambda_handler(event, context):
    origin = get_request_origin(event)
    if is_preflight(event):
        return options_response(origin)

    try:
        request = VerifyPaymentRequest.model_validate(parse_request_body(event))

        with _stripe_client() as stripe:
            session = stripe.retrieve_checkout_session(request.session_id)

        payment_status = session.get("payment_status")
        is_paid = payment_status == "paid"
        payment_intent = session.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")

        if is_paid and payment_intent:
            updated = mark_purchases_paid(payment_intent)
            logger.info(f"Session {request.session_id} paid; {updated} purchase(s) marked paid")
        else:
            logger.info(f"Session {request.session_id} not paid (payment_status={payment_status})")

        # success reflects the payment outcome, not the request outcome
        return api_response(
            200,
            {
                "success": is_paid,
                "payment_status": payment_status,
                "customer_email": (session.get("customer_details") or {}).get("email"),
            },
            origin=origin,
        )

    except Exception as e:
        logger.error(f"Error in verify-payment: {e}", exc_info=True)
        return exception_response(e, origin)
