"""Shopify Admin GraphQL API client."""

import logging
import time
from typing import Any

import httpx

from shopsync.core.config import Settings, get_settings
from shopsync.core.exceptions import RemoteAPIError
from shopsync.core.retry import RETRYABLE_STATUS_CODES, SHOPIFY_API_POLICY, retry_with_backoff

logger = logging.getLogger(__name__)

# Refresh the access token this many seconds before it expires
TOKEN_REFRESH_BUFFER_SECONDS = 300

PRODUCT_FIELDS = """
    id
    title
    handle
    descriptionHtml
    vendor
    productType
    tags
    status
    variants(first: 100) {
      edges { node { id sku title price inventoryItem { id } inventoryQuantity } }
    }
"""


def to_gid(resource: str, numeric_id: Any) -> str:
    """``gid://shopify/Product/123`` from ``("Product", 123)``."""
    value = str(numeric_id)
    if value.startswith("gid://"):
        return value
    return f"gid://shopify/{resource}/{value}"


def edges(connection: dict | None) -> list[dict]:
    """Nodes of a GraphQL connection."""
    if not connection:
        return []
    return [edge["node"] for edge in connection.get("edges", [])]


class ShopifyClient:
    """Async client for the Shopify Admin GraphQL API.

    Authenticates with the client credentials grant and caches the access
    token until shortly before it expires.
    """

    def __init__(self, settings: Settings | None = None, http_client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self._http = http_client
        self._token: str | None = None
        self._token_expires_at: float = 0.0

    @property
    def endpoint(self) -> str:
        return (
            f"https://{self.settings.shopify_store_domain}/admin/api/"
            f"{self.settings.shopify_api_version}/graphql.json"
        )

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.settings.shopify_request_timeout)
        return self._http

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _get_token(self) -> str:
        if self._token and time.time() < self._token_expires_at - TOKEN_REFRESH_BUFFER_SECONDS:
            return self._token

        if not self.settings.is_shopify_configured:
            raise RemoteAPIError("Shopify credentials are not configured")

        response = await self._client().post(
            f"https://{self.settings.shopify_store_domain}/admin/oauth/access_token",
            json={
                "client_id": self.settings.shopify_client_id,
                "client_secret": self.settings.shopify_client_secret,
                "grant_type": "client_credentials",
            },
        )
        if response.status_code != 200:
            raise RemoteAPIError(
                f"Token request failed: {response.text[:200]}",
                status_code=response.status_code,
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )
        body = response.json()
        self._token = body["access_token"]
        self._token_expires_at = time.time() + int(body.get("expires_in", 86400))
        logger.debug("Obtained Shopify access token")
        return self._token

    @retry_with_backoff(SHOPIFY_API_POLICY)
    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Execute a GraphQL document and return its ``data``.

        Raises:
            RemoteAPIError: On HTTP errors or top-level GraphQL errors
        """
        token = await self._get_token()
        response = await self._client().post(
            self.endpoint,
            headers={"X-Shopify-Access-Token": token, "Content-Type": "application/json"},
            json={"query": query, "variables": variables or {}},
        )
        if response.status_code != 200:
            if response.status_code == 401:
                self._token = None
            raise RemoteAPIError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )

        body = response.json()
        if body.get("errors"):
            messages = "; ".join(e.get("message", str(e)) for e in body["errors"])
            throttled = any(
                e.get("extensions", {}).get("code") == "THROTTLED" for e in body["errors"]
            )
            raise RemoteAPIError(messages, status_code=200, retryable=throttled)
        return body.get("data") or {}

    async def graphql_paginated(
        self,
        query: str,
        connection: str,
        variables: dict[str, Any] | None = None,
        page_size: int = 50,
    ) -> list[dict]:
        """Follow ``pageInfo.endCursor`` of a top-level connection."""
        nodes: list[dict] = []
        after = None
        while True:
            data = await self.graphql(query, {**(variables or {}), "first": page_size, "after": after})
            page = data.get(connection) or {}
            nodes.extend(edges(page))
            info = page.get("pageInfo") or {}
            if not info.get("hasNextPage"):
                return nodes
            after = info.get("endCursor")

    @staticmethod
    def check_user_errors(errors: list[dict] | None, operation: str) -> None:
        if errors:
            messages = "; ".join(f"{'.'.join(e.get('field') or [])}: {e['message']}" for e in errors)
            raise RemoteAPIError(f"{operation} failed: {messages}")

    # =========================================================================
    # Products
    # =========================================================================

    async def get_product(self, product_id: str) -> dict | None:
        query = f"query GetProduct($id: ID!) {{ product(id: $id) {{ {PRODUCT_FIELDS} }} }}"
        data = await self.graphql(query, {"id": product_id})
        return data.get("product")

    async def get_product_by_sku(self, sku: str) -> dict | None:
        query = f"""
            query GetProductBySku($query: String!) {{
              products(first: 1, query: $query) {{ edges {{ node {{ {PRODUCT_FIELDS} }} }} }}
            }}
        """
        data = await self.graphql(query, {"query": f"sku:{sku}"})
        nodes = edges(data.get("products"))
        return nodes[0] if nodes else None

    async def create_product(self, product_input: dict[str, Any]) -> dict:
        mutation = f"""
            mutation CreateProduct($input: ProductInput!) {{
              productCreate(input: $input) {{
                product {{ {PRODUCT_FIELDS} }}
                userErrors {{ field message }}
              }}
            }}
        """
        data = await self.graphql(mutation, {"input": product_input})
        result = data["productCreate"]
        self.check_user_errors(result.get("userErrors"), "createProduct")
        return result["product"]

    async def update_product(self, product_id: str, product_input: dict[str, Any]) -> dict:
        mutation = f"""
            mutation UpdateProduct($input: ProductInput!) {{
              productUpdate(input: $input) {{
                product {{ {PRODUCT_FIELDS} }}
                userErrors {{ field message }}
              }}
            }}
        """
        data = await self.graphql(mutation, {"input": {"id": product_id, **product_input}})
        result = data["productUpdate"]
        self.check_user_errors(result.get("userErrors"), "updateProduct")
        return result["product"]

    async def archive_product(self, product_id: str) -> dict:
        return await self.update_product(product_id, {"status": "ARCHIVED"})

    async def delete_product(self, product_id: str) -> None:
        mutation = """
            mutation DeleteProduct($input: ProductDeleteInput!) {
              productDelete(input: $input) {
                deletedProductId
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {"input": {"id": product_id}})
        self.check_user_errors(data["productDelete"].get("userErrors"), "deleteProduct")

    async def create_variant(self, product_id: str, variant: dict[str, Any]) -> dict:
        mutation = """
            mutation CreateVariants($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
              productVariantsBulkCreate(productId: $productId, variants: $variants, strategy: REMOVE_STANDALONE_VARIANT) {
                productVariants { id sku title price inventoryItem { id } }
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {"productId": product_id, "variants": [variant]})
        result = data["productVariantsBulkCreate"]
        self.check_user_errors(result.get("userErrors"), "createVariant")
        return result["productVariants"][0]

    async def update_variant_price(self, product_id: str, variant_id: str, price: str) -> None:
        mutation = """
            mutation UpdateVariants($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
              productVariantsBulkUpdate(productId: $productId, variants: $variants) {
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(
            mutation, {"productId": product_id, "variants": [{"id": variant_id, "price": price}]}
        )
        self.check_user_errors(data["productVariantsBulkUpdate"].get("userErrors"), "updateVariant")

    async def set_metafield(
        self, owner_id: str, namespace: str, key: str, value: str, type_: str = "single_line_text_field"
    ) -> None:
        mutation = """
            mutation SetMetafields($metafields: [MetafieldsSetInput!]!) {
              metafieldsSet(metafields: $metafields) {
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {"metafields": [{
            "ownerId": owner_id, "namespace": namespace, "key": key, "value": value, "type": type_,
        }]})
        self.check_user_errors(data["metafieldsSet"].get("userErrors"), "setMetafield")

    # =========================================================================
    # Inventory
    # =========================================================================

    async def get_locations(self) -> list[dict]:
        query = """
            query GetLocations($first: Int!, $after: String) {
              locations(first: $first, after: $after) {
                edges { node { id name isActive } }
                pageInfo { hasNextPage endCursor }
              }
            }
        """
        return await self.graphql_paginated(query, "locations")

    async def find_inventory_item_by_sku(self, sku: str) -> str | None:
        query = """
            query FindVariant($query: String!) {
              productVariants(first: 1, query: $query) {
                edges { node { id sku inventoryItem { id } } }
              }
            }
        """
        data = await self.graphql(query, {"query": f"sku:{sku}"})
        nodes = [n for n in edges(data.get("productVariants")) if n.get("sku") == sku]
        return nodes[0]["inventoryItem"]["id"] if nodes else None

    async def get_inventory_quantity(self, inventory_item_id: str, location_id: str) -> int | None:
        query = """
            query GetLevel($id: ID!, $locationId: ID!) {
              inventoryItem(id: $id) {
                inventoryLevel(locationId: $locationId) {
                  quantities(names: ["available"]) { name quantity }
                }
              }
            }
        """
        data = await self.graphql(query, {"id": inventory_item_id, "locationId": location_id})
        level = (data.get("inventoryItem") or {}).get("inventoryLevel")
        if not level:
            return None
        for quantity in level.get("quantities", []):
            if quantity["name"] == "available":
                return int(quantity["quantity"])
        return None

    async def set_inventory_quantity(self, inventory_item_id: str, location_id: str, quantity: int) -> None:
        mutation = """
            mutation SetQuantity($input: InventorySetQuantitiesInput!) {
              inventorySetQuantities(input: $input) {
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {"input": {
            "name": "available",
            "reason": "correction",
            "ignoreCompareQuantity": True,
            "quantities": [{
                "inventoryItemId": inventory_item_id,
                "locationId": location_id,
                "quantity": quantity,
            }],
        }})
        self.check_user_errors(data["inventorySetQuantities"].get("userErrors"), "setInventoryQuantity")

    # =========================================================================
    # Orders and fulfillments
    # =========================================================================

    async def get_order_by_name(self, name: str) -> dict | None:
        query = """
            query GetOrderByName($query: String!) {
              orders(first: 1, query: $query) {
                edges { node { id name displayFulfillmentStatus } }
              }
            }
        """
        data = await self.graphql(query, {"query": f"name:{name}"})
        nodes = edges(data.get("orders"))
        return nodes[0] if nodes else None

    async def create_fulfillment(
        self,
        order_id: str,
        tracking_number: str | None = None,
        tracking_company: str | None = None,
        notify_customer: bool = True,
    ) -> dict:
        """Fulfill the first open fulfillment order of ``order_id``."""
        query = """
            query GetFulfillmentOrders($orderId: ID!) {
              order(id: $orderId) {
                fulfillmentOrders(first: 10) { edges { node { id status } } }
              }
            }
        """
        data = await self.graphql(query, {"orderId": order_id})
        orders = edges((data.get("order") or {}).get("fulfillmentOrders"))
        open_orders = [fo for fo in orders if fo.get("status") in ("OPEN", "IN_PROGRESS")]
        if not open_orders:
            raise RemoteAPIError(f"No open fulfillment order for {order_id}")

        fulfillment: dict[str, Any] = {
            "lineItemsByFulfillmentOrder": [{"fulfillmentOrderId": open_orders[0]["id"]}],
            "notifyCustomer": notify_customer,
        }
        if tracking_number:
            fulfillment["trackingInfo"] = {"number": tracking_number, "company": tracking_company}

        mutation = """
            mutation CreateFulfillment($fulfillment: FulfillmentV2Input!) {
              fulfillmentCreateV2(fulfillment: $fulfillment) {
                fulfillment { id status }
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {"fulfillment": fulfillment})
        result = data["fulfillmentCreateV2"]
        self.check_user_errors(result.get("userErrors"), "createFulfillment")
        return result["fulfillment"]

    # =========================================================================
    # Catalogs
    # =========================================================================

    async def get_catalogs(self) -> list[dict]:
        query = """
            query GetCatalogs($first: Int!, $after: String) {
              catalogs(first: $first, after: $after) {
                edges { node { id title status } }
                pageInfo { hasNextPage endCursor }
              }
            }
        """
        return await self.graphql_paginated(query, "catalogs")

    async def create_catalog(self, title: str) -> dict:
        mutation = """
            mutation CreateCatalog($input: CatalogCreateInput!) {
              catalogCreate(input: $input) {
                catalog { id title status }
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {"input": {"title": title, "status": "ACTIVE"}})
        result = data["catalogCreate"]
        self.check_user_errors(result.get("userErrors"), "createCatalog")
        return result["catalog"]

    async def update_catalog(self, catalog_id: str, title: str) -> None:
        mutation = """
            mutation UpdateCatalog($id: ID!, $input: CatalogUpdateInput!) {
              catalogUpdate(id: $id, input: $input) {
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {"id": catalog_id, "input": {"title": title}})
        self.check_user_errors(data["catalogUpdate"].get("userErrors"), "updateCatalog")

    # =========================================================================
    # Metaobjects
    # =========================================================================

    async def get_metaobject(self, metaobject_id: str) -> dict | None:
        query = """
            query GetMetaobject($id: ID!) {
              metaobject(id: $id) { id handle type fields { key value } }
            }
        """
        data = await self.graphql(query, {"id": metaobject_id})
        return data.get("metaobject")

    async def upsert_metaobject(self, type_: str, handle: str, fields: list[dict[str, str]]) -> dict:
        """Create or update the metaobject ``handle`` of definition ``type_``."""
        mutation = """
            mutation UpsertMetaobject($handle: MetaobjectHandleInput!, $metaobject: MetaobjectUpsertInput!) {
              metaobjectUpsert(handle: $handle, metaobject: $metaobject) {
                metaobject { id handle type }
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {
            "handle": {"type": type_, "handle": handle},
            "metaobject": {"fields": fields},
        })
        result = data["metaobjectUpsert"]
        self.check_user_errors(result.get("userErrors"), "upsertMetaobject")
        return result["metaobject"]

    async def delete_metaobject(self, metaobject_id: str) -> None:
        mutation = """
            mutation DeleteMetaobject($id: ID!) {
              metaobjectDelete(id: $id) {
                deletedId
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {"id": metaobject_id})
        self.check_user_errors(data["metaobjectDelete"].get("userErrors"), "deleteMetaobject")

    # =========================================================================
    # Discounts
    # =========================================================================

    async def get_discount(self, discount_id: str) -> dict | None:
        query = """
            query GetDiscount($id: ID!) {
              codeDiscountNode(id: $id) {
                id
                codeDiscount {
                  ... on DiscountCodeBasic {
                    title status startsAt endsAt
                    customerGets {
                      value {
                        ... on DiscountPercentage { percentage }
                        ... on DiscountAmount { amount { amount } }
                      }
                    }
                  }
                }
              }
            }
        """
        data = await self.graphql(query, {"id": discount_id})
        node = data.get("codeDiscountNode")
        if not node:
            return None
        discount = dict(node.get("codeDiscount") or {})
        value = (discount.pop("customerGets", None) or {}).get("value") or {}
        return {
            "id": node["id"],
            **discount,
            "percentage": value.get("percentage"),
            "amount": (value.get("amount") or {}).get("amount"),
        }

    async def create_discount_code(self, discount: dict[str, Any]) -> str:
        mutation = """
            mutation CreateDiscountCode($basicCodeDiscount: DiscountCodeBasicInput!) {
              discountCodeBasicCreate(basicCodeDiscount: $basicCodeDiscount) {
                codeDiscountNode { id }
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {"basicCodeDiscount": discount})
        result = data["discountCodeBasicCreate"]
        self.check_user_errors(result.get("userErrors"), "createDiscountCode")
        return result["codeDiscountNode"]["id"]

    async def update_discount_code(self, discount_id: str, discount: dict[str, Any]) -> None:
        mutation = """
            mutation UpdateDiscountCode($id: ID!, $basicCodeDiscount: DiscountCodeBasicInput!) {
              discountCodeBasicUpdate(id: $id, basicCodeDiscount: $basicCodeDiscount) {
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {"id": discount_id, "basicCodeDiscount": discount})
        self.check_user_errors(data["discountCodeBasicUpdate"].get("userErrors"), "updateDiscountCode")

    async def delete_discount_code(self, discount_id: str) -> None:
        mutation = """
            mutation DeleteDiscountCode($id: ID!) {
              discountCodeDelete(id: $id) {
                deletedCodeDiscountId
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {"id": discount_id})
        self.check_user_errors(data["discountCodeDelete"].get("userErrors"), "deleteDiscountCode")

    # =========================================================================
    # Gift cards
    # =========================================================================

    async def get_gift_cards(self) -> list[dict]:
        query = """
            query GetGiftCards($first: Int!, $after: String) {
              giftCards(first: $first, after: $after) {
                edges {
                  node {
                    id
                    maskedCode
                    enabled
                    initialValue { amount currencyCode }
                    balance { amount currencyCode }
                  }
                }
                pageInfo { hasNextPage endCursor }
              }
            }
        """
        return await self.graphql_paginated(query, "giftCards")

    async def create_gift_card(self, initial_value: str, code: str | None = None, note: str | None = None) -> dict:
        """Create a gift card.

        The plaintext code is only returned here, at creation time; it comes
        back as ``plaintext_code`` alongside the card.
        """
        mutation = """
            mutation CreateGiftCard($input: GiftCardCreateInput!) {
              giftCardCreate(input: $input) {
                giftCard { id maskedCode balance { amount currencyCode } }
                giftCardCode
                userErrors { field message }
              }
            }
        """
        gift_card: dict[str, Any] = {"initialValue": initial_value}
        if code:
            gift_card["code"] = code
        if note:
            gift_card["note"] = note
        data = await self.graphql(mutation, {"input": gift_card})
        result = data["giftCardCreate"]
        self.check_user_errors(result.get("userErrors"), "createGiftCard")
        return {**result["giftCard"], "plaintext_code": result.get("giftCardCode")}

    # =========================================================================
    # Webhook subscriptions
    # =========================================================================

    async def list_webhooks(self) -> list[dict]:
        query = """
            query ListWebhooks($first: Int!, $after: String) {
              webhookSubscriptions(first: $first, after: $after) {
                edges { node { id topic endpoint { ... on WebhookHttpEndpoint { callbackUrl } } } }
                pageInfo { hasNextPage endCursor }
              }
            }
        """
        return await self.graphql_paginated(query, "webhookSubscriptions")

    async def register_webhook(self, topic: str, callback_url: str) -> str:
        mutation = """
            mutation Register($topic: WebhookSubscriptionTopic!, $sub: WebhookSubscriptionInput!) {
              webhookSubscriptionCreate(topic: $topic, webhookSubscription: $sub) {
                webhookSubscription { id }
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {
            "topic": topic_to_enum(topic),
            "sub": {"callbackUrl": callback_url, "format": "JSON"},
        })
        result = data["webhookSubscriptionCreate"]
        self.check_user_errors(result.get("userErrors"), "registerWebhook")
        return result["webhookSubscription"]["id"]

    async def delete_webhook(self, subscription_id: str) -> None:
        mutation = """
            mutation Delete($id: ID!) {
              webhookSubscriptionDelete(id: $id) {
                userErrors { field message }
              }
            }
        """
        data = await self.graphql(mutation, {"id": subscription_id})
        self.check_user_errors(data["webhookSubscriptionDelete"].get("userErrors"), "deleteWebhook")

    async def sync_webhooks(self, topics: list[str], base_url: str) -> dict[str, int]:
        """Register missing subscriptions for ``topics`` pointing at ``base_url``.

        Subscriptions pointing at this endpoint for topics no longer wanted
        are removed.
        """
        callback_url = f"{base_url.rstrip('/')}/webhooks"
        wanted = {topic_to_enum(t): t for t in topics}
        existing = await self.list_webhooks()
        registered, removed = 0, 0

        current = set()
        for sub in existing:
            url = (sub.get("endpoint") or {}).get("callbackUrl")
            if url != callback_url:
                continue
            if sub["topic"] in wanted:
                current.add(sub["topic"])
            else:
                await self.delete_webhook(sub["id"])
                removed += 1

        for enum_topic, topic in wanted.items():
            if enum_topic not in current:
                await self.register_webhook(topic, callback_url)
                registered += 1

        logger.info(f"Webhook subscriptions synced: {registered} registered, {removed} removed")
        return {"registered": registered, "removed": removed}


def topic_to_enum(topic: str) -> str:
    """``orders/create`` -> ``ORDERS_CREATE``."""
    return topic.replace("/", "_").upper()
