"""Webhook signature verification and topic helpers."""

import base64
import hashlib
import hmac
from typing import Any

from shopsync.api.services.shopify_client import to_gid
from shopsync.core.exceptions import SignatureVerificationError

# REST resource names for topic prefixes, used to build GraphQL ids
TOPIC_RESOURCES = {
    "orders": "Order",
    "customers": "Customer",
    "products": "Product",
    "inventory_levels": "InventoryLevel",
}


def compute_signature(body: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 of the raw request body."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_signature(body: bytes, signature: str | None, secret: str) -> None:
    """Raise SignatureVerificationError unless ``signature`` matches ``body``."""
    if not signature:
        raise SignatureVerificationError("Missing webhook signature")
    expected = compute_signature(body, secret)
    if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
        raise SignatureVerificationError("Invalid webhook signature")


def normalize_topic(topic: str) -> str:
    """``orders-create`` (URL form) -> ``orders/create``."""
    topic = topic.strip().lower()
    if "/" in topic:
        return topic
    return topic.replace("-", "/", 1)


def extract_resource_id(topic: str, data: dict[str, Any]) -> str | None:
    """GraphQL id of the record a webhook is about."""
    if data.get("admin_graphql_api_id"):
        return str(data["admin_graphql_api_id"])
    resource = TOPIC_RESOURCES.get(topic.split("/", 1)[0])
    if resource == "InventoryLevel" and data.get("inventory_item_id"):
        return to_gid("InventoryItem", data["inventory_item_id"])
    if resource and data.get("id") is not None:
        return to_gid(resource, data["id"])
    return None
