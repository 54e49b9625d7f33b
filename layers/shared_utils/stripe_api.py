"""Minimal Stripe REST client for checkout sessions."""
import logging
import os
from typing import Any, Dict, Optional

import httpx

import constants
from exceptions import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)

STRIPE_API_VERSION = "2023-10-16"


class StripeClient:
    """Talks to the Stripe API with form-encoded requests, as Stripe expects."""

    def __init__(self, secret_key: Optional[str] = None, transport: Optional[httpx.BaseTransport] = None):
        key = secret_key or os.environ.get("STRIPE_SECRET_KEY")
        if not key or not key.startswith("sk_"):
            logger.error("Invalid or missing STRIPE_SECRET_KEY")
            raise ConfigurationError("Payment service configuration error", missing=["STRIPE_SECRET_KEY"])
        self.client = httpx.Client(
            base_url=constants.STRIPE_API_BASE,
            headers={
                "Authorization": f"Bearer {key}",
                "Stripe-Version": STRIPE_API_VERSION,
            },
            timeout=constants.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    def __enter__(self) -> "StripeClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()

    def _handle(self, response: httpx.Response) -> Dict[str, Any]:
        if response.is_error:
            try:
                message = response.json().get("error", {}).get("message")
            except ValueError:
                message = None
            raise ExternalServiceError(
                message or f"Stripe API error: {response.status_code}", response.status_code
            )
        return response.json()

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        return self._handle(self.client.get(f"/checkout/sessions/{session_id}"))

    def find_customer_id(self, email: str) -> Optional[str]:
        data = self._handle(self.client.get("/customers", params={"email": email, "limit": 1}))
        customers = data.get("data") or []
        return customers[0]["id"] if customers else None

    def create_checkout_session(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return self._handle(self.client.post("/checkout/sessions", data=flatten_params(params)))


def flatten_params(params: Dict[str, Any], prefix: str = "") -> Dict[str, str]:
    """Encode nested dicts/lists with Stripe's bracket notation."""
    flat: Dict[str, str] = {}
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            flat.update(flatten_params(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, dict):
                    flat.update(flatten_params(item, item_name))
                else:
                    flat[item_name] = str(item)
        elif isinstance(value, bool):
            flat[name] = "true" if value else "false"
        else:
            flat[name] = str(value)
    return flat
