"""Controllers of the shop fixture module."""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from discovery.markers import (
    action_name,
    allow_anonymous,
    api_controller,
    authorize,
    http_delete,
    http_get,
    http_post,
    non_action,
)


class OrderStatus(str, Enum):
    NEW = "New"
    PROCESSING = "Processing"
    COMPLETED = "Completed"


@dataclass
class OrderSearchCriteria:
    keyword: Optional[str] = None
    status: Optional[OrderStatus] = None
    take: int = 20


@api_controller(route="api/order")
@authorize(roles="Admin, Sales")
class OrderController:

    @http_get
    def list(self, take: int = 20, skip: int = 0):
        raise NotImplementedError

    @http_get("{id}")
    @authorize(policy="order:read", roles="Admin")
    def get(self, id: str):
        raise NotImplementedError

    @http_get("{id}/items/{itemId}")
    def get_item(self, id: str):
        """Get a single line item of an order.

        Args:
            id: Order id
        """
        raise NotImplementedError

    @http_post("search")
    def search(self, criteria: OrderSearchCriteria):
        raise NotImplementedError

    @http_get("by-status")
    def by_status(self, status: OrderStatus, tags: Optional[List[str]] = None):
        raise NotImplementedError

    @http_delete("{id}")
    def delete(self, id: str):
        raise NotImplementedError

    @http_get("/api/order-ping")
    @allow_anonymous
    def ping(self):
        raise NotImplementedError

    @http_get
    @non_action
    def helper(self):
        raise NotImplementedError

    def _internal(self):
        raise NotImplementedError


@api_controller
class StoreController:

    @http_get
    @action_name("All")
    def list_stores(self):
        raise NotImplementedError


@api_controller
class InternalController:

    @http_get
    def secrets(self):
        raise NotImplementedError


@api_controller
class ReportHelper:

    @http_get
    def run(self):
        raise NotImplementedError
