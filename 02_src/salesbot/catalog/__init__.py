"""Catalog traversal helpers."""

from .utils import (
    UNNAMED_SERVICE,
    format_price,
    get_breadcrumb,
    has_orderable_services,
    list_children,
    partition_children,
    require_node,
)

__all__ = [
    "UNNAMED_SERVICE",
    "format_price",
    "get_breadcrumb",
    "has_orderable_services",
    "list_children",
    "partition_children",
    "require_node",
]
