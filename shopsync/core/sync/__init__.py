"""Sync handlers and the per-kind handler registry."""

import logging

from shopsync.api.services.mapping_store import IdMappingStore
from shopsync.api.services.sheets_client import SheetsClient
from shopsync.api.services.shopify_client import ShopifyClient
from shopsync.core.config import Settings
from shopsync.core.data_objects import DataObjectKind, DataObjectsConfig
from shopsync.core.sync.catalogs import CatalogsAdapter
from shopsync.core.sync.customers import CustomersAdapter
from shopsync.core.sync.discounts import DiscountsAdapter
from shopsync.core.sync.fulfillments import FulfillmentsHandler
from shopsync.core.sync.gift_cards import GiftCardsHandler
from shopsync.core.sync.inventory import InventoryAdapter
from shopsync.core.sync.lifecycle import HandlerContext, SyncHandler
from shopsync.core.sync.metaobjects import MetaobjectsAdapter
from shopsync.core.sync.orders import OrdersAdapter
from shopsync.core.sync.products import ProductsAdapter
from shopsync.core.sync.pull import PullHandler
from shopsync.core.sync.push import PushHandler

logger = logging.getLogger(__name__)


def build_handlers(
    data_objects: DataObjectsConfig,
    context: HandlerContext,
    settings: Settings,
    shopify: ShopifyClient,
    sheets: SheetsClient,
    mappings: IdMappingStore,
) -> dict[DataObjectKind, SyncHandler]:
    """One handler per enabled kind."""
    handlers: dict[DataObjectKind, SyncHandler] = {}
    for kind, config in data_objects.items():
        if not config.enabled:
            continue
        if kind == DataObjectKind.PRODUCTS:
            handlers[kind] = PushHandler(kind, config, ProductsAdapter(config, shopify, sheets), context)
        elif kind == DataObjectKind.INVENTORY:
            adapter = InventoryAdapter(
                config, shopify, sheets, mappings, default_location=settings.shopify_default_location
            )
            handlers[kind] = PushHandler(kind, config, adapter, context)
        elif kind == DataObjectKind.CATALOGS:
            handlers[kind] = PushHandler(kind, config, CatalogsAdapter(config, shopify, sheets), context)
        elif kind == DataObjectKind.METAOBJECTS:
            handlers[kind] = PushHandler(kind, config, MetaobjectsAdapter(config, shopify, sheets), context)
        elif kind == DataObjectKind.DISCOUNTS:
            handlers[kind] = PushHandler(kind, config, DiscountsAdapter(config, shopify, sheets), context)
        elif kind == DataObjectKind.FULFILLMENTS:
            handlers[kind] = FulfillmentsHandler(kind, config, shopify, sheets, context)
        elif kind == DataObjectKind.GIFT_CARDS:
            handlers[kind] = GiftCardsHandler(kind, config, shopify, sheets, context)
        elif kind == DataObjectKind.ORDERS:
            handlers[kind] = PullHandler(kind, config, OrdersAdapter(config, sheets), context)
        elif kind == DataObjectKind.CUSTOMERS:
            handlers[kind] = PullHandler(kind, config, CustomersAdapter(config, sheets), context)
    logger.debug(f"Built handlers for {', '.join(k.value for k in handlers)}")
    return handlers


__all__ = ["build_handlers", "PushHandler", "PullHandler", "HandlerContext"]
