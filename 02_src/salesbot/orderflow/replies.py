"""Customer-facing reply texts."""

from ..catalog import UNNAMED_SERVICE, format_price
from ..models import CatalogNode, Currency

CHOICE_FOOTER = "Reply with the number of your choice."

INVALID_CHOICE = "Invalid choice. Please select a valid number."

CONFIRMATION_PROMPT = (
    "⚠️ Please choose an option:\n"
    "• Type 'order' to confirm your order\n"
    "• Type 'menu' to go back to main menu"
)

NO_SERVICES = "Sorry, no services are available right now. Please try again later."

ORDER_FAILED = (
    "❌ Sorry, there was an error processing your order. "
    "Please try again or contact support."
)

MESSAGE_FAILED = "⚠️ There was an error processing your message. Please try again."


def _name(node: CatalogNode) -> str:
    return node.name or UNNAMED_SERVICE


def main_menu(business_name: str, nodes: list[CatalogNode], currency: Currency) -> str:
    lines = [f"Welcome to {business_name}! Here are our services:"]
    for i, node in enumerate(nodes, start=1):
        if node.is_orderable:
            lines.append(f"{i}. {_name(node)} - {format_price(node.price, currency)}")
        else:
            lines.append(f"{i}. {_name(node)}")
    lines.append(CHOICE_FOOTER)
    return "\n".join(lines)


def submenu(selected: CatalogNode, options: list[CatalogNode], currency: Currency) -> str:
    lines = [f"You selected: {_name(selected)}", "", "Available options:"]
    for i, node in enumerate(options, start=1):
        if node.is_orderable:
            lines.append(f"{i}. {_name(node)} - {format_price(node.price, currency)}")
        else:
            lines.append(f"{i}. {_name(node)} (Category)")
    lines.append(CHOICE_FOOTER)
    return "\n".join(lines)


def selected_service(node: CatalogNode, currency: Currency) -> str:
    return (
        f"You selected: {_name(node)}\n"
        f"Price: {format_price(node.price, currency)}\n\n"
        "Reply with 'order' to place an order or 'menu' to go back to main menu."
    )


def no_orderable_services(node: CatalogNode) -> str:
    return (
        f'❌ No orderable services found under "{_name(node)}".\n\n'
        "Type 'menu' to go back to main menu."
    )


def not_orderable(node: CatalogNode) -> str:
    return (
        f'❌ "{_name(node)}" is not available for ordering.\n\n'
        "Type 'menu' to see available options."
    )


def category_not_orderable(node: CatalogNode) -> str:
    return (
        f'❌ Sorry, "{_name(node)}" is a category and cannot be ordered directly.\n\n'
        "Please select a specific service with pricing from the menu.\n\n"
        "Type 'menu' to see available options."
    )


def service_unavailable() -> str:
    return "❌ Sorry, this service is no longer available.\n\nType 'menu' to see available options."


def order_placed(
    order_id: str,
    breadcrumb: list[str],
    price: float,
    currency: Currency,
    business_name: str,
) -> str:
    return (
        "✅ Order placed successfully!\n\n"
        f"📋 Order ID: {order_id}\n"
        f"💼 Service: {' > '.join(breadcrumb)}\n"
        f"💰 Price: {format_price(price, currency)}\n"
        "📊 Status: Pending\n\n"
        "You will receive updates on your order status. "
        f"Thank you for choosing {business_name}!"
    )


def order_message(node: CatalogNode, currency: Currency) -> str:
    return f"I would like to order: {_name(node)} for {format_price(node.price, currency)}"


def order_notification(node: CatalogNode, currency: Currency, conversation_id: str) -> str:
    return (
        f"New Order: {_name(node)} ({format_price(node.price, currency)}) "
        f"from {conversation_id}"
    )


def reply_added(short_id: str, text: str) -> str:
    return (
        f"✅ Your message has been added to order #{short_id}.\n\n"
        f'💬 Your message: "{text}"\n\n'
        "Our team will respond shortly. Type 'close' to end this conversation."
    )


def order_completed(short_id: str) -> str:
    return (
        f"✅ Order #{short_id} has been marked as completed.\n\n"
        "Thank you for your business! Type 'menu' to start a new order."
    )
