"""
Routing Application DTOs
========================

Data Transfer Objects for the ticket routing API.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.config import Priority, VALID_DEPARTMENTS, VALID_PRIORITIES
from src.routing.domain import RoutingRule, RoutingResult, SuggestedReply, Ticket


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ========== Request DTOs ==========

class CreateTicketRequest(_CamelModel):
    """Request model for opening a ticket."""
    subject: str = Field(..., description="Short summary")
    body: str = Field(..., description="Full description")
    created_by: Optional[str] = Field(None, alias="createdBy")
    priority: str = Field(default=Priority.MEDIUM)

    @field_validator("subject", "body")
    @classmethod
    def validate_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Subject and body are required")
        return v

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v: str) -> str:
        if v not in VALID_PRIORITIES:
            raise ValueError(f"Invalid priority. Must be one of: {VALID_PRIORITIES}")
        return v


class RoutingFeedbackRequest(_CamelModel):
    """Whether the automatic routing of a ticket was right."""
    was_correct: bool = Field(..., alias="wasCorrect")


class CreateRoutingRuleRequest(_CamelModel):
    """Request model for adding a keyword routing rule."""
    name: str
    keywords: str = Field(..., description="Comma separated keywords")
    department: str
    priority: str = Field(default=Priority.MEDIUM)
    is_active: bool = Field(default=True, alias="isActive")
    accuracy: int = Field(default=80, ge=0, le=100)

    @field_validator("name", "keywords")
    @classmethod
    def validate_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Rule name and keywords are required")
        return v

    @field_validator("department")
    @classmethod
    def validate_department(cls, v: str) -> str:
        if v not in VALID_DEPARTMENTS:
            raise ValueError(f"Invalid department. Must be one of: {VALID_DEPARTMENTS}")
        return v

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v: str) -> str:
        if v not in VALID_PRIORITIES:
            raise ValueError(f"Invalid priority. Must be one of: {VALID_PRIORITIES}")
        return v

    def to_domain(self) -> RoutingRule:
        return RoutingRule(
            name=self.name,
            keywords=self.keywords,
            department=self.department,
            priority=self.priority,
            is_active=self.is_active,
            accuracy=self.accuracy
        )


# ========== Response DTOs ==========

class RoutingInfo(_CamelModel):
    department: str
    confidence: int = Field(..., ge=0, le=100)
    reasoning: str
    strategy: str
    matched_rule: Optional[str] = Field(None, alias="matchedRule")

    @classmethod
    def from_result(cls, result: RoutingResult) -> "RoutingInfo":
        return cls(
            department=result.department,
            confidence=result.confidence,
            reasoning=result.reasoning,
            strategy=result.strategy,
            matched_rule=result.matched_rule
        )


class TicketInfo(_CamelModel):
    id: str
    subject: str
    body: str
    created_by: Optional[str] = Field(None, alias="createdBy")
    priority: str
    status: str
    department: Optional[str] = None
    routing_confidence: Optional[int] = Field(None, alias="routingConfidence")
    created_at: datetime = Field(..., alias="createdAt")

    @classmethod
    def from_domain(cls, ticket: Ticket) -> "TicketInfo":
        return cls(
            id=ticket.id,
            subject=ticket.subject,
            body=ticket.body,
            created_by=ticket.created_by,
            priority=ticket.priority,
            status=ticket.status,
            department=ticket.department,
            routing_confidence=ticket.routing_confidence,
            created_at=ticket.created_at
        )


class CreateTicketResponse(_CamelModel):
    """Created ticket plus the routing decision behind its department."""
    ticket: TicketInfo
    routing: RoutingInfo


class SuggestedReplyInfo(_CamelModel):
    id: str
    suggestion: str
    tone: str
    confidence: float = Field(..., ge=0, le=1)

    @classmethod
    def from_domain(cls, reply: SuggestedReply) -> "SuggestedReplyInfo":
        return cls(id=reply.id, suggestion=reply.suggestion, tone=reply.tone, confidence=reply.confidence)


class SuggestRepliesResponse(_CamelModel):
    suggestions: List[SuggestedReplyInfo]


class RoutingFeedbackResponse(_CamelModel):
    ticket_id: str = Field(..., alias="ticketId")
    rule_id: Optional[str] = Field(None, alias="ruleId")
    accuracy: Optional[int] = None
    updated: bool


class RoutingRuleInfo(_CamelModel):
    id: str
    name: str
    keywords: str
    department: str
    priority: str
    is_active: bool = Field(..., alias="isActive")
    accuracy: int

    @classmethod
    def from_domain(cls, rule: RoutingRule) -> "RoutingRuleInfo":
        return cls(
            id=rule.id,
            name=rule.name,
            keywords=rule.keywords,
            department=rule.department,
            priority=rule.priority,
            is_active=rule.is_active,
            accuracy=rule.accuracy
        )


class RoutingAccuracyResponse(_CamelModel):
    """Mean accuracy over all routing rules."""
    accuracy: int = Field(..., ge=0, le=100)
    rules: int
