"""OrderFlow: the per-conversation sales state machine."""

import asyncio
import uuid
from datetime import datetime, timezone

from ..catalog import (
    UNNAMED_SERVICE,
    get_breadcrumb,
    has_orderable_services,
    list_children,
    partition_children,
    require_node,
)
from ..connection import IDispatcher
from ..conversation import ConversationRegistry
from ..errors import CatalogLookupError, PersistenceError
from ..event_bus import IEventBus
from ..logging_config import get_logger
from ..models import (
    BusMessage,
    CatalogNode,
    Conversation,
    Order,
    OrderReply,
    OrderStatus,
    Step,
    Topic,
)
from ..notify import INotifier
from ..storage import ICatalog, ICurrencyProvider, IOrderStore
from ..tracker import ITracker
from . import replies

logger = get_logger(__name__)

ACTOR = "order_flow"

MENU_COMMANDS = frozenset({"menu", "start", "help"})
CLOSE_COMMANDS = frozenset({"close", "end", "done"})


def parse_choice(text: str, count: int) -> int | None:
    """1-based index typed by the customer, or None if it is not one."""
    value = text.strip()
    if not (value.isascii() and value.isdigit()):
        return None
    choice = int(value)
    return choice if 1 <= choice <= count else None


def short_id(order_id: str) -> str:
    return order_id[-8:]


class OrderFlow:
    """Turns inbound customer text into menu navigation, orders and replies.

    Menu commands (menu/start/help) always restart at the top-level menu.
    Close commands (close/end/done) complete the order bound to the
    conversation. A conversation without a record is first matched against its
    most recent open order, so replies after a restart reach the right order.
    """

    def __init__(
        self,
        registry: ConversationRegistry,
        catalog: ICatalog,
        orders: IOrderStore,
        currency: ICurrencyProvider,
        dispatcher: IDispatcher,
        event_bus: IEventBus,
        tracker: ITracker,
        notifier: INotifier | None = None,
        business_name: str = "Fx Cobra X",
    ):
        self._registry = registry
        self._catalog = catalog
        self._orders = orders
        self._currency = currency
        self._dispatcher = dispatcher
        self._event_bus = event_bus
        self._tracker = tracker
        self._notifier = notifier
        self._business_name = business_name
        self._notify_tasks: set[asyncio.Task] = set()

    @property
    def registry(self) -> ConversationRegistry:
        return self._registry

    @property
    def pending_notifications(self) -> int:
        return len(self._notify_tasks)

    async def start(self) -> None:
        """Subscribe to INBOUND topic."""
        self._event_bus.subscribe(Topic.INBOUND, self._handle_inbound)

    async def stop(self) -> None:
        """Unsubscribe and let in-flight notifications finish."""
        self._event_bus.unsubscribe(Topic.INBOUND, self._handle_inbound)
        await self.wait_for_notifications()

    async def wait_for_notifications(self) -> None:
        if self._notify_tasks:
            await asyncio.gather(*self._notify_tasks, return_exceptions=True)

    async def _handle_inbound(self, bus_message: BusMessage) -> None:
        payload = bus_message.payload
        await self.handle_message(payload["conversation_id"], payload.get("text", ""))

    async def handle_message(self, conversation_id: str, text: str) -> None:
        """Process one customer message. Never raises."""
        try:
            async with self._registry.lock(conversation_id):
                await self._dispatch(conversation_id, text)
        except Exception as e:
            logger.error(
                "Error handling message: %s",
                e,
                exc_info=True,
                extra={"conversation_id": conversation_id},
            )

    async def _dispatch(self, conversation_id: str, text: str) -> None:
        command = text.strip().lower()
        record = self._registry.get(conversation_id)

        logger.info(
            "Incoming message (step=%s)",
            record.step.value if record else "none",
            extra={"conversation_id": conversation_id},
        )
        await self._tracker.track(
            "message_received",
            ACTOR,
            {
                "conversation_id": conversation_id,
                "text": text,
                "step": record.step.value if record else None,
            },
        )

        if command in MENU_COMMANDS:
            self._registry.delete(conversation_id)
            await self._show_main_menu(conversation_id)
            return

        if record is None:
            await self._recover_or_greet(conversation_id, text, command)
        elif record.step in (Step.SERVICE_SELECTION, Step.PRODUCT_SELECTION):
            await self._on_selection(record, text)
        elif record.step is Step.ORDER_CONFIRMATION:
            await self._on_confirmation(record, command)
        elif record.step is Step.IN_CONVERSATION:
            await self._on_conversation_message(record, text, command)

    # No record

    async def _recover_or_greet(self, conversation_id: str, text: str, command: str) -> None:
        try:
            order = await self._orders.find_open_order(conversation_id)
        except PersistenceError as e:
            logger.error(
                "Open order lookup failed: %s", e, extra={"conversation_id": conversation_id}
            )
            await self._reply(conversation_id, replies.MESSAGE_FAILED)
            return

        if order is None:
            await self._show_main_menu(conversation_id)
            return

        logger.info(
            "Treating message as a reply to open order",
            extra={"conversation_id": conversation_id, "order_id": order.id},
        )
        if command in CLOSE_COMMANDS:
            await self._complete_order(conversation_id, order.id)
        else:
            await self._add_customer_reply(conversation_id, order.id, text)

    async def _show_main_menu(self, conversation_id: str) -> None:
        nodes = await list_children(self._catalog, None)
        if not nodes:
            self._registry.delete(conversation_id)
            await self._reply(conversation_id, replies.NO_SERVICES)
            return

        currency = await self._currency.get_active_currency()
        self._registry.set(
            Conversation(conversation_id, Step.SERVICE_SELECTION, options=nodes)
        )
        await self._reply(
            conversation_id, replies.main_menu(self._business_name, nodes, currency)
        )

    # SERVICE_SELECTION / PRODUCT_SELECTION

    async def _on_selection(self, record: Conversation, text: str) -> None:
        conversation_id = record.conversation_id
        choice = parse_choice(text, len(record.options))
        if choice is None:
            await self._reply(conversation_id, replies.INVALID_CHOICE)
            return

        node = record.options[choice - 1]
        currency = await self._currency.get_active_currency()
        children = await list_children(self._catalog, node.id)

        if children:
            categories, orderable = await partition_children(self._catalog, children)
            options = categories + orderable
            if not options or not await has_orderable_services(self._catalog, node.id):
                self._registry.delete(conversation_id)
                await self._reply(conversation_id, replies.no_orderable_services(node))
                return

            self._registry.set(
                Conversation(
                    conversation_id,
                    Step.PRODUCT_SELECTION,
                    options=options,
                    selected=node,
                )
            )
            await self._reply(conversation_id, replies.submenu(node, options, currency))
        elif node.is_orderable:
            self._registry.set(
                Conversation(conversation_id, Step.ORDER_CONFIRMATION, selected=node)
            )
            await self._reply(conversation_id, replies.selected_service(node, currency))
        else:
            self._registry.delete(conversation_id)
            await self._reply(conversation_id, replies.not_orderable(node))

    # ORDER_CONFIRMATION

    async def _on_confirmation(self, record: Conversation, command: str) -> None:
        # "menu" never gets here: it is handled with the other menu commands.
        if command == "order" and record.selected is not None:
            await self._place_order(record.conversation_id, record.selected.id)
        else:
            await self._reply(record.conversation_id, replies.CONFIRMATION_PROMPT)

    async def _place_order(self, conversation_id: str, node_id: str) -> None:
        # Re-read the node so the order carries the current price.
        try:
            node = await require_node(self._catalog, node_id)
        except CatalogLookupError as e:
            logger.warning("Selected service vanished: %s", e)
            self._registry.delete(conversation_id)
            await self._reply(conversation_id, replies.service_unavailable())
            return

        if not node.is_orderable:
            self._registry.delete(conversation_id)
            await self._reply(conversation_id, replies.category_not_orderable(node))
            return

        currency = await self._currency.get_active_currency()
        now = datetime.now(timezone.utc)
        order = Order(
            id=uuid.uuid4().hex,
            conversation_id=conversation_id,
            service_id=node.id,
            service_name=node.name or UNNAMED_SERVICE,
            price=node.price,
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
            message=replies.order_message(node, currency),
        )

        try:
            order_id = await self._orders.create_order(order)
        except PersistenceError as e:
            logger.error(
                "Error creating order: %s", e, extra={"conversation_id": conversation_id}
            )
            self._registry.delete(conversation_id)
            await self._reply(conversation_id, replies.ORDER_FAILED)
            return

        self._schedule_notification(
            replies.order_notification(node, currency, conversation_id)
        )

        breadcrumb = await get_breadcrumb(self._catalog, node) or [order.service_name]
        self._registry.delete(conversation_id)

        logger.info(
            "Order created for %s",
            " > ".join(breadcrumb),
            extra={"conversation_id": conversation_id, "order_id": order_id},
        )
        await self._tracker.track(
            "order_created",
            ACTOR,
            {
                "conversation_id": conversation_id,
                "order_id": order_id,
                "service_id": node.id,
                "breadcrumb": breadcrumb,
                "price": node.price,
            },
        )
        await self._event_bus.emit(
            Topic.ORDER,
            {"event": "order_created", "order_id": order_id, "conversation_id": conversation_id},
            source=ACTOR,
        )
        await self._reply(
            conversation_id,
            replies.order_placed(
                order_id, breadcrumb, node.price, currency, self._business_name
            ),
        )

    def _schedule_notification(self, text: str) -> None:
        if self._notifier is None:
            return
        task = asyncio.create_task(self._notify(text))
        self._notify_tasks.add(task)
        task.add_done_callback(self._notify_tasks.discard)

    async def _notify(self, text: str) -> None:
        try:
            await self._notifier.notify(text)
        except Exception as e:
            logger.warning("Order notification failed: %s", e)

    # IN_CONVERSATION

    async def _on_conversation_message(
        self, record: Conversation, text: str, command: str
    ) -> None:
        if command in CLOSE_COMMANDS:
            await self._complete_order(record.conversation_id, record.order_id)
        else:
            await self._add_customer_reply(record.conversation_id, record.order_id, text)

    async def _add_customer_reply(self, conversation_id: str, order_id: str, text: str) -> None:
        reply = OrderReply(text=text, timestamp=datetime.now(timezone.utc), is_customer=True)
        try:
            await self._orders.append_reply(order_id, reply, status=OrderStatus.PROCESSING)
        except PersistenceError as e:
            logger.error(
                "Error adding customer reply: %s",
                e,
                extra={"conversation_id": conversation_id, "order_id": order_id},
            )
            self._registry.delete(conversation_id)
            await self._reply(conversation_id, replies.MESSAGE_FAILED)
            return

        self._registry.set(
            Conversation(conversation_id, Step.IN_CONVERSATION, order_id=order_id)
        )
        await self._tracker.track(
            "order_reply_added",
            ACTOR,
            {"conversation_id": conversation_id, "order_id": order_id, "text": text},
        )
        await self._event_bus.emit(
            Topic.ORDER,
            {"event": "customer_reply", "order_id": order_id, "conversation_id": conversation_id},
            source=ACTOR,
        )
        await self._reply(conversation_id, replies.reply_added(short_id(order_id), text))

    async def _complete_order(self, conversation_id: str, order_id: str) -> None:
        try:
            await self._orders.set_order_status(order_id, OrderStatus.COMPLETED)
        except PersistenceError as e:
            logger.error(
                "Error completing order: %s",
                e,
                extra={"conversation_id": conversation_id, "order_id": order_id},
            )
            self._registry.delete(conversation_id)
            await self._reply(conversation_id, replies.MESSAGE_FAILED)
            return

        self._registry.delete(conversation_id)
        await self._tracker.track(
            "order_completed",
            ACTOR,
            {"conversation_id": conversation_id, "order_id": order_id},
        )
        await self._event_bus.emit(
            Topic.ORDER,
            {"event": "order_completed", "order_id": order_id, "conversation_id": conversation_id},
            source=ACTOR,
        )
        await self._reply(conversation_id, replies.order_completed(short_id(order_id)))

    async def _reply(self, conversation_id: str, text: str) -> None:
        receipt = await self._dispatcher.send_text(conversation_id, text)
        await self._tracker.track(
            "reply_sent",
            ACTOR,
            {
                "conversation_id": conversation_id,
                "delivered": receipt is not None,
                "text": text[:100],
            },
        )
