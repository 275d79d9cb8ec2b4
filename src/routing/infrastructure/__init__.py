"""
Routing Infrastructure Layer
============================

Persistence adapters for routing rules and tickets.
"""

from src.routing.infrastructure.models import RoutingRuleModel, TicketModel
from src.routing.infrastructure.repositories import (
    SQLAlchemyRoutingRuleRepository,
    SQLAlchemyTicketRepository,
)

__all__ = [
    "RoutingRuleModel",
    "TicketModel",
    "SQLAlchemyRoutingRuleRepository",
    "SQLAlchemyTicketRepository",
]
