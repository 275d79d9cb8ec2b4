"""
Routing Value Objects
=====================

Keyword rule matching, accuracy bookkeeping and the stock rule set.
"""

from typing import List, Optional, Sequence

from src.config import Department, Priority, ReplyTone, RoutingStrategy
from src.routing.domain.entities import RoutingRule, RoutingResult, SuggestedReply, Ticket


ACCURACY_REWARD = 5
ACCURACY_PENALTY = 3

DEFAULT_ROUTING_RULES: List[dict] = [
    {
        "name": "HR Leave Requests",
        "keywords": "leave, vacation, sick day, PTO, time off, absence, holiday",
        "department": Department.HR,
        "priority": Priority.MEDIUM,
        "accuracy": 85,
    },
    {
        "name": "HR Payroll & Benefits",
        "keywords": "payroll, salary, benefits, health insurance, 401k, pension, bonus",
        "department": Department.HR,
        "priority": Priority.MEDIUM,
        "accuracy": 90,
    },
    {
        "name": "IT Software Issues",
        "keywords": "software, application, program, bug, error, crash, login, password",
        "department": Department.IT,
        "priority": Priority.HIGH,
        "accuracy": 88,
    },
    {
        "name": "IT Hardware Issues",
        "keywords": "computer, laptop, monitor, printer, mouse, keyboard, hardware",
        "department": Department.IT,
        "priority": Priority.HIGH,
        "accuracy": 92,
    },
    {
        "name": "Finance Expenses",
        "keywords": "expense, receipt, reimbursement, travel, invoice, payment",
        "department": Department.FINANCE,
        "priority": Priority.MEDIUM,
        "accuracy": 87,
    },
]


def default_rules() -> List[RoutingRule]:
    return [RoutingRule(**rule) for rule in DEFAULT_ROUTING_RULES]


def adjust_accuracy(current: int, was_correct: bool) -> int:
    """+5 for confirmed routing, -3 for a correction, within [0, 100]."""
    if was_correct:
        return min(100, current + ACCURACY_REWARD)
    return max(0, current - ACCURACY_PENALTY)


class KeywordRuleMatcher:
    """
    First-match keyword routing.

    Rules are tried in the given order; the first active rule with at least
    one keyword in the ticket wins. Confidence grows 15 points per matched
    keyword from a base of 60, capped at 95.
    """

    BASE_CONFIDENCE = 60
    PER_KEYWORD = 15
    MAX_CONFIDENCE = 95

    @classmethod
    def match(cls, content: str, rules: Sequence[RoutingRule]) -> Optional[RoutingResult]:
        lowered = content.lower()
        for rule in rules:
            if not rule.is_active:
                continue
            matched = rule.matched_keywords(lowered)
            if matched:
                return RoutingResult(
                    department=rule.department,
                    confidence=min(cls.MAX_CONFIDENCE, cls.BASE_CONFIDENCE + cls.PER_KEYWORD * len(matched)),
                    reasoning=f"Matched keywords: {', '.join(matched)}",
                    strategy=RoutingStrategy.RULE,
                    matched_rule=rule.name,
                    matched_rule_id=rule.id
                )
        return None


def template_replies(ticket_id: str, ticket: Ticket) -> List[SuggestedReply]:
    """Stock replies used when the LLM cannot draft any."""
    subject = ticket.subject
    department = ticket.department or Department.GENERAL
    return [
        SuggestedReply(
            id=f"reply-{ticket_id}-0",
            suggestion=(
                f"Thank you for reporting this issue. I understand your concern regarding \"{subject}\". "
                "I'm looking into this matter and will provide you with a resolution within 24 hours. "
                "Please let me know if you need any immediate assistance."
            ),
            tone=ReplyTone.PROFESSIONAL,
            confidence=0.8
        ),
        SuggestedReply(
            id=f"reply-{ticket_id}-1",
            suggestion=(
                f"I'm sorry to hear you're experiencing this issue with \"{subject}\". I completely "
                "understand how frustrating this must be for you. Let me personally ensure this gets "
                "resolved quickly. I'll investigate the details and get back to you with a solution."
            ),
            tone=ReplyTone.EMPATHETIC,
            confidence=0.8
        ),
        SuggestedReply(
            id=f"reply-{ticket_id}-2",
            suggestion=(
                f"I've reviewed your ticket regarding \"{subject}\". Based on the information provided, "
                f"this appears to be related to {department}. I'll need to run some diagnostics and "
                "check our system logs. Please provide any error messages or additional details that "
                "might help with troubleshooting."
            ),
            tone=ReplyTone.TECHNICAL,
            confidence=0.8
        ),
    ]
