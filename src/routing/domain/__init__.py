"""
Routing Domain Layer
====================

Domain layer for ticket routing.

Contains:
- Entities: Ticket, RoutingRule, RoutingResult, SuggestedReply
- Value Objects: KeywordRuleMatcher, stock rules, accuracy adjustment

This layer is framework-agnostic and contains pure business logic.
"""

from src.routing.domain.entities import (
    normalize_department,
    RoutingRule,
    RoutingResult,
    Ticket,
    SuggestedReply,
    RoutingPromptBuilder,
    ReplyPromptBuilder,
)
from src.routing.domain.value_objects import (
    DEFAULT_ROUTING_RULES,
    default_rules,
    adjust_accuracy,
    KeywordRuleMatcher,
    template_replies,
)

__all__ = [
    "normalize_department",
    "RoutingRule",
    "RoutingResult",
    "Ticket",
    "SuggestedReply",
    "RoutingPromptBuilder",
    "ReplyPromptBuilder",
    "DEFAULT_ROUTING_RULES",
    "default_rules",
    "adjust_accuracy",
    "KeywordRuleMatcher",
    "template_replies",
]
