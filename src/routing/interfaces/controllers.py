"""
Routing Controllers (API Routes)
================================

FastAPI routes for ticket intake, reply suggestions and routing rules.
"""

from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database import get_session
from src.knowledge.infrastructure import SQLAlchemyKnowledgeRepository
from src.knowledge.interfaces.controllers import get_lexicon, get_llm_client
from src.routing.application import (
    CreateTicketRequest, CreateTicketResponse, TicketInfo, RoutingInfo,
    SuggestedReplyInfo, SuggestRepliesResponse,
    RoutingFeedbackRequest, RoutingFeedbackResponse,
    CreateRoutingRuleRequest, RoutingRuleInfo, RoutingAccuracyResponse,
    TicketRoutingService, TicketService, ReplySuggestionService,
)
from src.routing.infrastructure import SQLAlchemyRoutingRuleRepository, SQLAlchemyTicketRepository

router = APIRouter(prefix="/api", tags=["Routing"])


# ========== Dependencies ==========

async def get_routing_service(
    request: Request,
    db: AsyncSession = Depends(get_session)
) -> TicketRoutingService:
    return TicketRoutingService(
        rule_repository=SQLAlchemyRoutingRuleRepository(db),
        chat=get_llm_client(request),
        lexicon=get_lexicon(request)
    )


async def get_ticket_service(
    db: AsyncSession = Depends(get_session),
    routing_service: TicketRoutingService = Depends(get_routing_service)
) -> TicketService:
    return TicketService(SQLAlchemyTicketRepository(db), routing_service)


async def get_reply_service(
    request: Request,
    db: AsyncSession = Depends(get_session)
) -> ReplySuggestionService:
    return ReplySuggestionService(
        ticket_repository=SQLAlchemyTicketRepository(db),
        knowledge_repository=SQLAlchemyKnowledgeRepository(db),
        chat=get_llm_client(request),
        lexicon=get_lexicon(request)
    )


# ========== Route Handlers ==========

@router.post(
    "/tickets",
    response_model=CreateTicketResponse,
    status_code=201,
    summary="Open a ticket",
    description="""
    Stores the ticket and routes it to a department.

    Routing tries keyword rules first, then the LLM, then built-in
    department keywords. If all of that fails the ticket goes to IT with
    confidence 20.
    """,
    responses={400: {"description": "Subject or body missing"}}
)
async def create_ticket(
    payload: CreateTicketRequest,
    service: TicketService = Depends(get_ticket_service)
) -> CreateTicketResponse:
    ticket, routing = await service.create_ticket(
        subject=payload.subject,
        body=payload.body,
        created_by=payload.created_by,
        priority=payload.priority
    )
    return CreateTicketResponse(
        ticket=TicketInfo.from_domain(ticket),
        routing=RoutingInfo.from_result(routing)
    )


@router.post(
    "/tickets/{ticket_id}/suggest-replies",
    response_model=SuggestRepliesResponse,
    summary="Draft replies to a ticket",
    responses={404: {"description": "Ticket not found"}}
)
async def suggest_replies(
    ticket_id: str,
    service: ReplySuggestionService = Depends(get_reply_service)
) -> SuggestRepliesResponse:
    replies = await service.suggest_replies(ticket_id)
    return SuggestRepliesResponse(suggestions=[SuggestedReplyInfo.from_domain(r) for r in replies])


@router.post(
    "/tickets/{ticket_id}/routing-feedback",
    response_model=RoutingFeedbackResponse,
    summary="Confirm or correct a ticket's routing",
    description="""
    Adjusts the accuracy of the rule that routed the ticket: +5 when the
    routing was correct, -3 otherwise, kept within 0-100. Tickets routed
    without a rule are acknowledged with `updated: false`.
    """,
    responses={404: {"description": "Ticket or rule not found"}}
)
async def routing_feedback(
    ticket_id: str,
    payload: RoutingFeedbackRequest,
    service: TicketService = Depends(get_ticket_service)
) -> RoutingFeedbackResponse:
    feedback = await service.record_routing_feedback(ticket_id, payload.was_correct)
    return RoutingFeedbackResponse(
        ticket_id=feedback.ticket_id,
        rule_id=feedback.rule_id,
        accuracy=feedback.accuracy,
        updated=feedback.updated
    )


@router.get(
    "/routing-rules",
    response_model=List[RoutingRuleInfo],
    summary="List routing rules in evaluation order"
)
async def list_routing_rules(
    service: TicketRoutingService = Depends(get_routing_service)
) -> List[RoutingRuleInfo]:
    return [RoutingRuleInfo.from_domain(rule) for rule in await service.list_rules()]


@router.post(
    "/routing-rules",
    response_model=RoutingRuleInfo,
    status_code=201,
    summary="Add a keyword routing rule",
    responses={400: {"description": "Invalid rule"}}
)
async def create_routing_rule(
    payload: CreateRoutingRuleRequest,
    service: TicketRoutingService = Depends(get_routing_service)
) -> RoutingRuleInfo:
    rule = await service.create_rule(payload.to_domain())
    return RoutingRuleInfo.from_domain(rule)


@router.get(
    "/routing-accuracy",
    response_model=RoutingAccuracyResponse,
    summary="Mean accuracy of the routing rules"
)
async def routing_accuracy(
    service: TicketRoutingService = Depends(get_routing_service)
) -> RoutingAccuracyResponse:
    rules = await service.list_rules()
    accuracy = await service.get_routing_accuracy()
    return RoutingAccuracyResponse(accuracy=accuracy, rules=len(rules))
