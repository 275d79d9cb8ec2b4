"""
Routing Domain Entities
=======================

Domain entities for ticket routing and reply suggestions.

Contains pure Python business objects and the prompt builders used to ask
an LLM for a department or for reply drafts.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from src.config import Department, Priority, TicketStatus, RoutingStrategy, VALID_DEPARTMENTS
from src.knowledge.domain import clamp_confidence


def normalize_department(value: object) -> str:
    """Map free-form LLM output onto a known department, General otherwise."""
    if not isinstance(value, str):
        return Department.GENERAL
    needle = value.strip().lower()
    for department in VALID_DEPARTMENTS:
        if department.lower() == needle:
            return department
    return Department.GENERAL


@dataclass
class RoutingRule:
    """
    Keyword rule sending matching tickets to a department.

    ``keywords`` is the comma separated list as authored; ``accuracy`` moves
    with routing feedback and always stays within [0, 100].
    """
    name: str
    keywords: str
    department: str
    priority: str = Priority.MEDIUM
    is_active: bool = True
    accuracy: int = 80
    id: Optional[str] = None

    def __post_init__(self):
        self.accuracy = clamp_confidence(self.accuracy)

    @property
    def keyword_list(self) -> List[str]:
        return [k.strip().lower() for k in self.keywords.split(",") if k.strip()]

    def matched_keywords(self, content: str) -> List[str]:
        """Keywords of this rule found in lowercase ``content``."""
        return [keyword for keyword in self.keyword_list if keyword in content]


@dataclass
class RoutingResult:
    """
    Department chosen for a ticket.

    ``strategy`` tells which routing stage decided: rule, ai, heuristic or
    default (pipeline failure).
    """
    department: str
    confidence: int
    reasoning: str
    strategy: str = RoutingStrategy.RULE
    matched_rule: Optional[str] = None
    matched_rule_id: Optional[str] = None

    def __post_init__(self):
        self.confidence = clamp_confidence(self.confidence)


@dataclass
class Ticket:
    """A workplace support ticket."""
    subject: str
    body: str
    created_by: Optional[str] = None
    priority: str = Priority.MEDIUM
    status: str = TicketStatus.OPEN
    department: Optional[str] = None
    routing_confidence: Optional[int] = None
    routing_reasoning: Optional[str] = None
    routing_strategy: Optional[str] = None
    routing_rule_id: Optional[str] = None
    id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def content(self) -> str:
        return f"{self.subject} {self.body}"

    def apply_routing(self, result: RoutingResult) -> None:
        self.department = result.department
        self.routing_confidence = result.confidence
        self.routing_reasoning = result.reasoning
        self.routing_strategy = result.strategy
        self.routing_rule_id = result.matched_rule_id


@dataclass
class SuggestedReply:
    """Draft reply to a ticket; ``confidence`` is in [0, 1]."""
    id: str
    suggestion: str
    tone: str
    confidence: float


class RoutingPromptBuilder:
    """Builds the ticket classification prompt."""

    SYSTEM_PROMPT = "You are an expert at categorizing support tickets. Always respond with valid JSON."

    USER_TEMPLATE = """Analyze this support ticket and determine which department should handle it.

Ticket Subject: {subject}
Ticket Body: {body}

Available Departments:
- HR: Human resources, payroll, benefits, leave requests, employee relations
- IT: Technical issues, software problems, hardware, network, security
- Finance: Expenses, budgets, accounting, invoices, payments
- General: Other requests that don't fit specific categories

Respond with JSON containing:
{{
  "department": "HR|IT|Finance|General",
  "confidence": number (0-100),
  "reasoning": "brief explanation"
}}"""

    @classmethod
    def build_messages(cls, subject: str, body: str) -> List[dict]:
        return [
            {"role": "system", "content": cls.SYSTEM_PROMPT},
            {"role": "user", "content": cls.USER_TEMPLATE.format(subject=subject, body=body)},
        ]


class ReplyPromptBuilder:
    """
    Builds the reply suggestion prompt.

    Knowledge base excerpts are included so drafts can cite company policy.
    """

    TEMPLATE = """You are an AI assistant helping create professional replies to workplace tickets.

Ticket Details:
- Subject: {subject}
- Description: {body}
- Department: {department}
- Priority: {priority}

Available Knowledge Base:
{context}

Generate 3 distinct reply suggestions with different tones:
1. Professional/Formal tone
2. Empathetic/Supportive tone
3. Technical/Detailed tone

Each reply should:
- Address the specific issue raised
- Reference relevant knowledge base information when applicable
- Be helpful and actionable
- Be 50-150 words

Respond with a JSON object of the form
{{"replies": [{{"suggestion": "...", "tone": "professional|empathetic|technical", "confidence": 0.0-1.0}}]}}"""

    @classmethod
    def build_messages(cls, ticket: Ticket, excerpts: List[str]) -> List[dict]:
        context = "\n\n".join(excerpts) if excerpts else "No related documents found."
        return [{
            "role": "user",
            "content": cls.TEMPLATE.format(
                subject=ticket.subject,
                body=ticket.body,
                department=ticket.department or Department.GENERAL,
                priority=ticket.priority,
                context=context
            )
        }]
