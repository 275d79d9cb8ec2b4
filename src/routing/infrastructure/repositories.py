"""
Routing Infrastructure Repositories
===================================

SQLAlchemy implementations of the routing repositories.
"""

from typing import List, Optional
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core import RepositoryException
from src.routing.application import IRoutingRuleRepository, ITicketRepository
from src.routing.domain import RoutingRule, Ticket
from src.routing.infrastructure.models import RoutingRuleModel, TicketModel


def _to_rule(model: RoutingRuleModel) -> RoutingRule:
    return RoutingRule(
        id=model.id,
        name=model.name,
        keywords=model.keywords,
        department=model.department,
        priority=model.priority,
        is_active=model.is_active,
        accuracy=model.accuracy
    )


def _to_ticket(model: TicketModel) -> Ticket:
    return Ticket(
        id=model.id,
        subject=model.subject,
        body=model.body,
        created_by=model.created_by,
        priority=model.priority,
        status=model.status,
        department=model.department,
        routing_confidence=model.routing_confidence,
        routing_reasoning=model.routing_reasoning,
        routing_strategy=model.routing_strategy,
        routing_rule_id=model.routing_rule_id,
        created_at=model.created_at
    )


class SQLAlchemyRoutingRuleRepository(IRoutingRuleRepository):
    """SQLAlchemy implementation for routing rules."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_rules(self) -> List[RoutingRule]:
        try:
            result = await self._session.execute(
                select(RoutingRuleModel).order_by(RoutingRuleModel.position)
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load routing rules: {e}")
        return [_to_rule(m) for m in result.scalars().all()]

    async def get_rule(self, rule_id: str) -> Optional[RoutingRule]:
        model = await self._session.get(RoutingRuleModel, rule_id)
        return _to_rule(model) if model else None

    async def create_rule(self, rule: RoutingRule) -> RoutingRule:
        position = await self._session.scalar(select(func.count()).select_from(RoutingRuleModel))
        model = RoutingRuleModel(
            id=rule.id or str(uuid4()),
            position=position or 0,
            name=rule.name,
            keywords=rule.keywords,
            department=rule.department,
            priority=rule.priority,
            is_active=rule.is_active,
            accuracy=rule.accuracy
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to store routing rule: {e}")

        rule.id = model.id
        return rule

    async def update_accuracy(self, rule_id: str, accuracy: int) -> None:
        stmt = (
            update(RoutingRuleModel)
            .where(RoutingRuleModel.id == rule_id)
            .values(accuracy=accuracy)
        )
        try:
            await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update routing rule accuracy: {e}")


class SQLAlchemyTicketRepository(ITicketRepository):
    """SQLAlchemy implementation for tickets."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, ticket: Ticket) -> Ticket:
        model = TicketModel(
            id=ticket.id or str(uuid4()),
            subject=ticket.subject,
            body=ticket.body,
            created_by=ticket.created_by,
            priority=ticket.priority,
            status=ticket.status,
            department=ticket.department,
            routing_confidence=ticket.routing_confidence,
            routing_reasoning=ticket.routing_reasoning,
            routing_strategy=ticket.routing_strategy,
            routing_rule_id=ticket.routing_rule_id,
            created_at=ticket.created_at
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to store ticket: {e}")

        ticket.id = model.id
        return ticket

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        model = await self._session.get(TicketModel, ticket_id)
        return _to_ticket(model) if model else None
