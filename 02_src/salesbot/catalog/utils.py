"""Helpers for walking the service catalog.

The catalog is assumed to be a forest, but every traversal here keeps a
visited set so a parent link pointing back into its own subtree ends the
walk instead of looping.
"""

from ..errors import CatalogLookupError
from ..logging_config import get_logger
from ..models import CatalogNode, Currency
from ..storage import ICatalog

logger = get_logger(__name__)

UNNAMED_SERVICE = "(Unnamed Service)"


def format_price(price: float | None, currency: Currency | None = None) -> str:
    """Render a price with the currency symbol and two decimals."""
    symbol = currency.symbol if currency and currency.symbol else "$"
    return f"{symbol}{float(price or 0):.2f}"


async def list_children(catalog: ICatalog, parent_id: str | None) -> list[CatalogNode]:
    """Children of parent_id; a failed lookup counts as no children."""
    try:
        return await catalog.children_of(parent_id)
    except CatalogLookupError as e:
        logger.warning("Children of %s unavailable, treating as empty: %s", parent_id, e)
        return []


async def has_orderable_services(
    catalog: ICatalog,
    parent_id: str | None,
    _visited: set[str | None] | None = None,
) -> bool:
    """True if any node below parent_id, at any depth, has a positive price."""
    visited = _visited if _visited is not None else set()
    if parent_id in visited:
        return False
    visited.add(parent_id)

    for child in await list_children(catalog, parent_id):
        if child.is_orderable:
            return True
        if await has_orderable_services(catalog, child.id, visited):
            return True
    return False


async def partition_children(
    catalog: ICatalog, children: list[CatalogNode]
) -> tuple[list[CatalogNode], list[CatalogNode]]:
    """Split children into (categories, orderable), dropping dead nodes.

    A category is an unpriced child that has children of its own; an unpriced
    child without children cannot lead anywhere and is left out.
    """
    categories: list[CatalogNode] = []
    orderable: list[CatalogNode] = []

    for child in children:
        if child.is_orderable:
            orderable.append(child)
            continue
        try:
            count = await catalog.child_count(child.id)
        except CatalogLookupError as e:
            logger.warning("Child count of %s unavailable: %s", child.id, e)
            count = 0
        if count > 0:
            categories.append(child)

    return categories, orderable


async def require_node(catalog: ICatalog, node_id: str) -> CatalogNode:
    """Fetch a node, raising CatalogLookupError if it does not exist."""
    node = await catalog.get_node(node_id)
    if node is None:
        raise CatalogLookupError(f"Catalog node {node_id} not found")
    return node


async def get_breadcrumb(catalog: ICatalog, node: CatalogNode | str) -> list[str]:
    """Names from the root down to node.

    Missing names are replaced with a placeholder; a broken parent link ends
    the path at the last node that could be resolved.
    """
    if isinstance(node, str):
        try:
            current: CatalogNode | None = await require_node(catalog, node)
        except CatalogLookupError as e:
            logger.warning("Breadcrumb unavailable: %s", e)
            return []
    else:
        current = node

    names: list[str] = []
    seen: set[str] = set()

    while current is not None and current.id not in seen:
        seen.add(current.id)
        names.append(current.name or UNNAMED_SERVICE)
        if not current.parent_id:
            break
        try:
            current = await require_node(catalog, current.parent_id)
        except CatalogLookupError as e:
            logger.warning("Broken parent link below %s: %s", names[-1], e)
            break

    names.reverse()
    return names
