"""Support tickets and their message threads."""

from .crud import add_message, create_ticket, list_user_tickets, view_ticket

__all__ = ["add_message", "create_ticket", "list_user_tickets", "view_ticket"]
