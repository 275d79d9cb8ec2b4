"""
Routing Application Services
============================

Application services for ticket routing and reply suggestions.

Routing tries the keyword rules first, then asks the LLM, then falls back
to the lexicon's department heuristics. Any failure of the pipeline itself
sends the ticket to IT with minimal confidence.
"""

import asyncio
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

from src.config import Department, RoutingStrategy, VALID_REPLY_TONES, ReplyTone
from src.core import ResourceNotFoundException
from src.infrastructure.llm import IChatCompleter, parse_json_content
from src.knowledge.application import IKnowledgeRepository, ILexiconProvider
from src.knowledge.domain import Document, KeywordMatcher, clamp_confidence
from src.routing.domain import (
    RoutingRule, RoutingResult, Ticket, SuggestedReply,
    RoutingPromptBuilder, ReplyPromptBuilder, KeywordRuleMatcher,
    normalize_department, adjust_accuracy, default_rules, template_replies,
)
from src.shared.infrastructure.grafana import get_grafana_exporter
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

ROUTING_ERROR_RESULT = dict(
    department=Department.IT,
    confidence=20,
    reasoning="Error in routing - defaulted to IT department",
    strategy=RoutingStrategy.DEFAULT,
)


# ========== Repository Interfaces ==========

class IRoutingRuleRepository(ABC):
    """Interface for routing rule storage."""

    @abstractmethod
    async def list_rules(self) -> List[RoutingRule]:
        """All rules in evaluation order."""

    @abstractmethod
    async def get_rule(self, rule_id: str) -> Optional[RoutingRule]:
        """Rule by ID."""

    @abstractmethod
    async def create_rule(self, rule: RoutingRule) -> RoutingRule:
        """Store a new rule."""

    @abstractmethod
    async def update_accuracy(self, rule_id: str, accuracy: int) -> None:
        """Persist a new accuracy value."""


class ITicketRepository(ABC):
    """Interface for ticket storage."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Store a new ticket."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Ticket by ID."""


# ========== Routing ==========

class TicketRoutingService:
    """
    Assigns tickets to departments and tracks rule accuracy.

    Coordinates between the rule repository, the LLM and the lexicon.
    """

    def __init__(
        self,
        rule_repository: IRoutingRuleRepository,
        chat: Optional[IChatCompleter],
        lexicon: ILexiconProvider
    ):
        self._rules = rule_repository
        self._chat = chat
        self._lexicon = lexicon

    async def route_ticket(self, subject: str, body: str) -> RoutingResult:
        """
        Department for a ticket.

        Never raises; a failure anywhere in the pipeline yields IT with
        confidence 20.
        """
        try:
            rules = await self._rules.list_rules()
            result = KeywordRuleMatcher.match(f"{subject} {body}", rules)
            if result is None:
                result = await self._ai_route(subject, body)
        except Exception as e:
            logger.error(
                "Error routing ticket",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            result = RoutingResult(**ROUTING_ERROR_RESULT)

        logger.info(
            "Ticket routed",
            extra={
                "department": result.department,
                "confidence": result.confidence,
                "strategy": result.strategy,
                "matched_rule": result.matched_rule,
            }
        )
        await get_grafana_exporter().export_routing_metrics(
            confidence=result.confidence,
            strategy=result.strategy,
            department=result.department
        )
        return result

    async def _ai_route(self, subject: str, body: str) -> RoutingResult:
        if self._chat is None:
            return self.heuristic_route(subject, body)

        try:
            completion = await self._chat.chat_completion(
                messages=RoutingPromptBuilder.build_messages(subject, body),
                temperature=0.3,
                max_tokens=300,
                operation="routing",
                json_mode=True
            )
            payload = parse_json_content(completion.content)
            if not isinstance(payload, dict):
                raise ValueError("routing response is not a JSON object")
        except Exception as e:
            logger.warning(
                "LLM unavailable, using keyword-based routing",
                extra={"error": str(e)}
            )
            return self.heuristic_route(subject, body)

        raw_confidence = payload.get("confidence")
        return RoutingResult(
            department=normalize_department(payload.get("department")),
            confidence=clamp_confidence(raw_confidence) if raw_confidence else 50,
            reasoning=str(payload.get("reasoning") or "AI-based classification"),
            strategy=RoutingStrategy.AI
        )

    def heuristic_route(self, subject: str, body: str) -> RoutingResult:
        """Fixed-priority term checks from the lexicon: IT, then HR, then Finance."""
        lexicon = self._lexicon.config
        heuristic = lexicon.find_department_heuristic(f"{subject} {body}")
        if heuristic is None:
            return RoutingResult(
                department=lexicon.heuristic_default_department,
                confidence=lexicon.heuristic_default_confidence,
                reasoning=lexicon.heuristic_default_reasoning,
                strategy=RoutingStrategy.HEURISTIC
            )
        return RoutingResult(
            department=heuristic.department,
            confidence=heuristic.confidence,
            reasoning=heuristic.reasoning,
            strategy=RoutingStrategy.HEURISTIC
        )

    async def update_rule_accuracy(self, rule_id: str, was_correct: bool) -> RoutingRule:
        """
        Reward or penalise a rule after routing feedback.

        Raises:
            ResourceNotFoundException: If the rule does not exist
        """
        rule = await self._rules.get_rule(rule_id)
        if rule is None:
            raise ResourceNotFoundException("RoutingRule", rule_id)

        rule.accuracy = adjust_accuracy(rule.accuracy, was_correct)
        await self._rules.update_accuracy(rule_id, rule.accuracy)

        logger.info(
            "Routing rule accuracy updated",
            extra={"rule_id": rule_id, "was_correct": was_correct, "accuracy": rule.accuracy}
        )
        return rule

    async def get_routing_accuracy(self) -> int:
        """Mean accuracy over all rules, 0 without rules."""
        rules = await self._rules.list_rules()
        if not rules:
            return 0
        return clamp_confidence(sum(rule.accuracy for rule in rules) / len(rules))

    async def list_rules(self) -> List[RoutingRule]:
        return await self._rules.list_rules()

    async def create_rule(self, rule: RoutingRule) -> RoutingRule:
        return await self._rules.create_rule(rule)

    async def create_default_rules(self) -> int:
        """Install the stock rules when no rule exists yet; returns how many were added."""
        if await self._rules.list_rules():
            return 0

        for rule in default_rules():
            await self._rules.create_rule(rule)

        logger.info("Installed default routing rules", extra={"rules": len(default_rules())})
        return len(default_rules())


# ========== Tickets ==========

@dataclass
class RoutingFeedback:
    ticket_id: str
    rule_id: Optional[str]
    accuracy: Optional[int]

    @property
    def updated(self) -> bool:
        return self.rule_id is not None


class TicketService:
    """Ticket intake with automatic routing, plus routing feedback."""

    def __init__(self, ticket_repository: ITicketRepository, routing_service: TicketRoutingService):
        self._tickets = ticket_repository
        self._routing = routing_service

    async def create_ticket(
        self,
        subject: str,
        body: str,
        created_by: Optional[str] = None,
        priority: Optional[str] = None
    ) -> Tuple[Ticket, RoutingResult]:
        routing = await self._routing.route_ticket(subject, body)

        ticket = Ticket(subject=subject, body=body, created_by=created_by)
        if priority:
            ticket.priority = priority
        ticket.apply_routing(routing)

        ticket = await self._tickets.create(ticket)
        return ticket, routing

    async def record_routing_feedback(self, ticket_id: str, was_correct: bool) -> RoutingFeedback:
        """
        Feed a routing confirmation or correction back into rule accuracy.

        Tickets routed without a rule (AI, heuristic, default) carry nothing
        to update.

        Raises:
            ResourceNotFoundException: If the ticket does not exist
        """
        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)

        if not ticket.routing_rule_id:
            return RoutingFeedback(ticket_id=ticket_id, rule_id=None, accuracy=None)

        rule = await self._routing.update_rule_accuracy(ticket.routing_rule_id, was_correct)
        return RoutingFeedback(ticket_id=ticket_id, rule_id=rule.id, accuracy=rule.accuracy)


# ========== Reply suggestions ==========

class ReplySuggestionService:
    """
    Drafts replies to a ticket.

    The prompt carries the knowledge base excerpts that best match the
    ticket by keywords. Without a usable LLM answer, three stock replies are
    returned.
    """

    MAX_EXCERPTS = 3

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        knowledge_repository: IKnowledgeRepository,
        chat: Optional[IChatCompleter],
        lexicon: ILexiconProvider
    ):
        self._tickets = ticket_repository
        self._knowledge = knowledge_repository
        self._chat = chat
        self._lexicon = lexicon

    async def suggest_replies(self, ticket_id: str) -> List[SuggestedReply]:
        """
        Raises:
            ResourceNotFoundException: If the ticket does not exist
        """
        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)

        if self._chat is None:
            return template_replies(ticket_id, ticket)

        excerpts = await self._find_excerpts(ticket)

        try:
            completion = await self._chat.chat_completion(
                messages=ReplyPromptBuilder.build_messages(ticket, excerpts),
                temperature=0.7,
                max_tokens=1000,
                operation="reply_suggestions",
                json_mode=True
            )
            payload = parse_json_content(completion.content)
        except Exception as e:
            logger.warning(
                "LLM unavailable, using template replies",
                extra={"error": str(e), "ticket_id": ticket_id}
            )
            return template_replies(ticket_id, ticket)

        replies = self._parse_replies(ticket_id, payload)
        if not replies:
            logger.warning("LLM returned no usable replies, using templates", extra={"ticket_id": ticket_id})
            return template_replies(ticket_id, ticket)
        return replies

    @staticmethod
    def _parse_replies(ticket_id: str, payload) -> List[SuggestedReply]:
        items = payload.get("replies", []) if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            return []

        replies = []
        for item in items:
            if not isinstance(item, dict) or not item.get("suggestion"):
                continue
            tone = str(item.get("tone", "")).lower()
            try:
                confidence = float(item.get("confidence", 0.8))
            except (TypeError, ValueError):
                confidence = 0.8
            if not math.isfinite(confidence):
                confidence = 0.8
            replies.append(SuggestedReply(
                id=f"reply-{ticket_id}-{len(replies)}",
                suggestion=str(item["suggestion"]),
                tone=tone if tone in VALID_REPLY_TONES else ReplyTone.PROFESSIONAL,
                confidence=max(0.0, min(1.0, confidence))
            ))
        return replies

    async def _find_excerpts(self, ticket: Ticket) -> List[str]:
        try:
            documents = await self._scope_documents(ticket.department)
            if not documents:
                return []
            per_document = await asyncio.gather(
                *(self._knowledge.get_chunks(document.id) for document in documents)
            )
        except Exception as e:
            logger.warning("Could not load knowledge base for replies", extra={"error": str(e)})
            return []

        titles = {document.id: document.title for document in documents}
        chunks = [chunk for chunks in per_document for chunk in chunks]
        ranked = KeywordMatcher(self._lexicon.config).rank(
            ticket.content, chunks, limit=self.MAX_EXCERPTS
        )
        return [
            f"Document: {titles.get(item.chunk.document_id, 'Unknown Document')}\nContent: {item.chunk.text[:500]}"
            for item in ranked
        ]

    async def _scope_documents(self, department: Optional[str]) -> List[Document]:
        if department:
            needle = department.lower()
            for candidate in await self._knowledge.list_departments():
                if candidate.name.lower() == needle:
                    documents = await self._knowledge.list_documents(candidate.id)
                    if documents:
                        return documents
        return await self._knowledge.list_documents()
