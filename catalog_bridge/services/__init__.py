# -*- coding: utf-8 -*-
from .api_client import APIClient, APIClientError
from .rate_limiter import RateLimiter
from .keycrm_client import KeyCRMClient
from .checkbox_client import CheckboxClient, CheckboxSession
from .group_resolver import GroupResolver
from .sync_service import ProductSyncService, SyncError
from .product_resolver import ProductResolver
from .order_builder import OrderBuilder
from .ingestion import SaleIngestionPipeline
