"""
Routing Application Layer
=========================

Application layer for ticket routing.

Contains:
- Services: Routing ladder, ticket intake, reply suggestions
- DTOs: Data transfer objects for API serialization
"""

from src.routing.application.dto import (
    CreateTicketRequest,
    CreateTicketResponse,
    TicketInfo,
    RoutingInfo,
    SuggestedReplyInfo,
    SuggestRepliesResponse,
    RoutingFeedbackRequest,
    RoutingFeedbackResponse,
    CreateRoutingRuleRequest,
    RoutingRuleInfo,
    RoutingAccuracyResponse,
)
from src.routing.application.services import (
    IRoutingRuleRepository,
    ITicketRepository,
    TicketRoutingService,
    TicketService,
    RoutingFeedback,
    ReplySuggestionService,
)

__all__ = [
    # DTOs
    "CreateTicketRequest",
    "CreateTicketResponse",
    "TicketInfo",
    "RoutingInfo",
    "SuggestedReplyInfo",
    "SuggestRepliesResponse",
    "RoutingFeedbackRequest",
    "RoutingFeedbackResponse",
    "CreateRoutingRuleRequest",
    "RoutingRuleInfo",
    "RoutingAccuracyResponse",
    # Services
    "TicketRoutingService",
    "TicketService",
    "RoutingFeedback",
    "ReplySuggestionService",
    # Interfaces
    "IRoutingRuleRepository",
    "ITicketRepository",
]
