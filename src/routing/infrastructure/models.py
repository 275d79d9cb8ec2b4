"""
Routing Infrastructure Models
=============================

SQLAlchemy ORM models for routing rules and tickets.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import String, DateTime, Integer, Text, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database import Base
from src.config import Priority, TicketStatus


def _new_id() -> str:
    return str(uuid4())


class RoutingRuleModel(Base):
    """
    Database model for RoutingRule entity.

    Rules are evaluated in ``position`` order, which follows creation order.
    """
    __tablename__ = "routing_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    keywords: Mapped[str] = mapped_column(Text, nullable=False)
    department: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default=Priority.MEDIUM)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    accuracy: Mapped[int] = mapped_column(Integer, nullable=False, default=80)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )


class TicketModel(Base):
    """Database model for Ticket entity, with the routing decision that placed it."""
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default=Priority.MEDIUM)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TicketStatus.OPEN, index=True)

    department: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    routing_confidence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    routing_reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    routing_strategy: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    routing_rule_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("routing_rules.id", ondelete="SET NULL"),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
