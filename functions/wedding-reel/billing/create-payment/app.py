import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

from aws_lambda_powertools import Logger

import constants
from common_response_utils import (
    api_response,
    exception_response,
    get_caller_email,
    get_caller_id,
    get_request_origin,
    is_preflight,
    options_response,
    parse_request_body,
)
from dynamodb_helper import DynamoDBHelper
from exceptions import AccessDeniedError, DynamoDBError, ExternalServiceError
from request_schemas import CreatePaymentRequest
from stripe_api import StripeClient

logger = Logger(service=f"{constants.SERVICE_NAME}-create-payment")

projects_db = DynamoDBHelper(constants.PROJECTS_TABLE, constants.AWS_REGION)
purchases_db = DynamoDBHelper(constants.PURCHASES_TABLE, constants.AWS_REGION)

_UNSAFE_CHARS = re.compile(r'[<>"\'&]')


def _stripe_client() -> StripeClient:
    return StripeClient()


def sanitize_string(value: str) -> str:
    return _UNSAFE_CHARS.sub('', value).strip()[:200]


def check_origin(origin: Optional[str]) -> str:
    origin = origin or "http://localhost:5173"
    if not any(origin.startswith(allowed) for allowed in constants.ALLOWED_ORIGINS):
        logger.error(f"Origin not allowed: {origin}")
        raise AccessDeniedError("Access denied: Invalid origin")
    return origin


def check_project_owner(project_id: str, user_id: str) -> None:
    project = projects_db.get_item({"id": project_id})
    if not project or project.get("user_id") != user_id:
        raise AccessDeniedError("Access denied: Invalid project access")


def build_session_params(request: CreatePaymentRequest, origin: str, user_id: Optional[str],
                         customer_id: Optional[str], customer_email: str) -> Dict[str, Any]:
    tier_label = request.tier.capitalize()
    metadata = {
        "tier": request.tier,
        "user_id": user_id or "guest",
        "project_id": request.project_id or "",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    params: Dict[str, Any] = {
        "payment_method_types": ["card"],
        "line_items": [{
            "price_data": {
                "currency": "usd",
                "product_data": {
                    "name": sanitize_string(request.product_name or f"MemoryWeave {tier_label} Plan"),
                    "description": f"Wedding video editing - {tier_label} tier",
                },
                "unit_amount": request.amount,
            },
            "quantity": 1,
        }],
        "mode": request.mode,
        "success_url": f"{origin}/payment-success?tier={quote(request.tier)}&project_id={quote(request.project_id or '')}",
        "cancel_url": f"{origin}/subscription",
        "allow_promotion_codes": True,
        "metadata": metadata,
    }
    if request.mode == "payment":
        params["payment_intent_data"] = {"metadata": metadata}
    else:
        params["subscription_data"] = {"metadata": metadata}
        # recurring price for subscription checkouts
        params["line_items"][0]["price_data"]["recurring"] = {"interval": "month"}

    if customer_id:
        params["customer"] = customer_id
    else:
        params["customer_email"] = customer_email
    return params


def record_purchase_intent(user_id: str, request: CreatePaymentRequest, session: Dict[str, Any]) -> None:
    """Store a pending per-wedding purchase; failures are logged, not raised."""
    try:
        purchases_db.put_item({
            "user_id": user_id,
            "id": str(uuid.uuid4()),
            "project_id": request.project_id,
            "stripe_payment_intent_id": session.get("payment_intent"),
            "stripe_session_id": session.get("id"),
            "tier": request.tier,
            "amount": request.amount,
            "status": "pending",
            "created_at": datetime.now(timezone.utc).isoformat(),
        })
        logger.info("Purchase intent recorded successfully")
    except DynamoDBError as e:
        logger.error(f"Error recording purchase intent: {e}")


def lambda_handler(event, context):
    origin = get_request_origin(event)
    if is_preflight(event):
        return options_response(origin)

    try:
        request = CreatePaymentRequest.model_validate(parse_request_body(event))
        logger.info(f"Request validated: tier={request.tier}, amount={request.amount}, mode={request.mode}, "
                    f"project_id={'provided' if request.project_id else 'none'}")

        user_id = get_caller_id(event)
        customer_email = get_caller_email(event) or constants.DEFAULT_CUSTOMER_EMAIL
        if user_id and request.project_id:
            check_project_owner(request.project_id, user_id)

        redirect_origin = check_origin(origin)

        with _stripe_client() as stripe:
            customer_id = stripe.find_customer_id(customer_email) if user_id and customer_email != constants.DEFAULT_CUSTOMER_EMAIL else None
            params = build_session_params(request, redirect_origin, user_id, customer_id, customer_email)
            session = stripe.create_checkout_session(params)

        if not session.get("url"):
            raise ExternalServiceError("Failed to create checkout session URL")
        logger.info(f"Stripe session created: {session.get('id')}")

        if user_id and request.project_id and request.mode == "payment":
            record_purchase_intent(user_id, request, session)

        return api_response(200, {"success": True, "url": session["url"], "session_id": session["id"]}, origin=origin)

    except Exception as e:
        logger.error(f"Error in create-payment: {e}", exc_info=True)
        return exception_response(e, origin)
