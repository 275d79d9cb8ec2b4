"""
Tests for ticket routing: rules, AI classification, heuristics and accuracy.
"""

import pytest

from src.config import Department, RoutingStrategy
from src.core import LLMException, RepositoryException, ResourceNotFoundException
from src.routing.application import TicketRoutingService, TicketService
from src.routing.domain import (
    KeywordRuleMatcher, RoutingRule, adjust_accuracy, default_rules, normalize_department,
)

from tests.conftest import FakeRoutingRuleRepository, completion


@pytest.fixture
def password_rule():
    return RoutingRule(name="IT Access", keywords="password, login", department=Department.IT, accuracy=88)


class TestKeywordRuleMatcher:

    def test_first_matching_active_rule_wins(self, password_rule):
        rules = [
            RoutingRule(name="Disabled", keywords="password", department=Department.HR, is_active=False),
            password_rule,
            RoutingRule(name="Later", keywords="password", department=Department.FINANCE),
        ]

        result = KeywordRuleMatcher.match("forgot my password", rules)

        assert result.department == Department.IT
        assert result.matched_rule == "IT Access"

    @pytest.mark.parametrize("content,confidence", [
        ("password", 75),
        ("password and login", 90),
    ])
    def test_confidence_grows_with_matches(self, password_rule, content, confidence):
        assert KeywordRuleMatcher.match(content, [password_rule]).confidence == confidence

    def test_confidence_is_capped(self):
        rule = RoutingRule(name="Many", keywords="a1, b2, c3, d4, e5", department=Department.IT)

        assert KeywordRuleMatcher.match("a1 b2 c3 d4 e5", [rule]).confidence == 95

    def test_case_insensitive(self, password_rule):
        assert KeywordRuleMatcher.match("PASSWORD EXPIRED", [password_rule]) is not None

    def test_no_match(self, password_rule):
        assert KeywordRuleMatcher.match("printer jam", [password_rule]) is None


class TestAccuracy:

    @pytest.mark.parametrize("current,was_correct,expected", [
        (80, True, 85),
        (80, False, 77),
        (98, True, 100),
        (2, False, 0),
        (100, True, 100),
        (0, False, 0),
    ])
    def test_adjust_accuracy(self, current, was_correct, expected):
        assert adjust_accuracy(current, was_correct) == expected

    def test_rule_accuracy_is_clamped_on_construction(self):
        assert RoutingRule(name="r", keywords="k", department="IT", accuracy=140).accuracy == 100


class TestRouteTicket:

    async def test_rule_routing(self, rule_repository, chat, lexicon, password_rule):
        await rule_repository.create_rule(password_rule)
        service = TicketRoutingService(rule_repository, chat, lexicon)

        result = await service.route_ticket("Forgot my password", "Can't log in")

        assert result.department == Department.IT
        assert result.confidence >= 75
        assert "password" in result.reasoning
        assert result.strategy == RoutingStrategy.RULE
        assert result.matched_rule_id == password_rule.id
        chat.chat_completion.assert_not_awaited()

    async def test_ai_routing(self, rule_repository, chat, lexicon):
        chat.chat_completion.return_value = completion(
            {"department": "finance", "confidence": 83, "reasoning": "Budget question"}
        )
        service = TicketRoutingService(rule_repository, chat, lexicon)

        result = await service.route_ticket("Quarterly numbers", "Where do I find the forecast?")

        assert result.department == Department.FINANCE
        assert result.confidence == 83
        assert result.reasoning == "Budget question"
        assert result.strategy == RoutingStrategy.AI
        kwargs = chat.chat_completion.await_args.kwargs
        assert kwargs["operation"] == "routing"
        assert kwargs["json_mode"] is True

    async def test_ai_fenced_json_and_unknown_department(self, rule_repository, chat, lexicon):
        chat.chat_completion.return_value = completion(
            '```json\n{"department": "Legal", "confidence": 250}\n```'
        )
        service = TicketRoutingService(rule_repository, chat, lexicon)

        result = await service.route_ticket("Contract review", "Please check the NDA")

        assert result.department == Department.GENERAL
        assert result.confidence == 100
        assert result.reasoning == "AI-based classification"

    async def test_ai_missing_confidence_defaults_to_50(self, rule_repository, chat, lexicon):
        chat.chat_completion.return_value = completion({"department": "HR"})
        service = TicketRoutingService(rule_repository, chat, lexicon)

        result = await service.route_ticket("Team event", "Who organises it?")

        assert result.confidence == 50

    @pytest.mark.parametrize("failure", [
        LLMException("rate limited"),
        None,
    ])
    async def test_heuristic_routing_when_ai_fails(self, rule_repository, chat, lexicon, failure):
        if failure is None:
            chat.chat_completion.return_value = completion("not json at all")
        else:
            chat.chat_completion.side_effect = failure
        service = TicketRoutingService(rule_repository, chat, lexicon)

        result = await service.route_ticket("Payroll question", "My payroll slip is missing")

        assert result.department == Department.HR
        assert result.confidence == 75
        assert result.strategy == RoutingStrategy.HEURISTIC

    async def test_heuristic_routing_without_llm(self, rule_repository, lexicon):
        service = TicketRoutingService(rule_repository, None, lexicon)

        it_result = await service.route_ticket("Cannot access", "The network share is gone")
        general_result = await service.route_ticket("Parking", "Where can I park?")

        assert (it_result.department, it_result.confidence) == (Department.IT, 75)
        assert (general_result.department, general_result.confidence) == (Department.GENERAL, 40)

    async def test_total_failure_defaults_to_it(self, chat, lexicon):
        rules = FakeRoutingRuleRepository()
        rules.fail_with = RepositoryException("database unreachable")
        chat.chat_completion.side_effect = LLMException("down")
        service = TicketRoutingService(rules, chat, lexicon)

        result = await service.route_ticket("Anything", "At all")

        assert result.department == Department.IT
        assert result.confidence == 20
        assert result.strategy == RoutingStrategy.DEFAULT


class TestRuleManagement:

    async def test_update_rule_accuracy(self, rule_repository, chat, lexicon, password_rule):
        await rule_repository.create_rule(password_rule)
        service = TicketRoutingService(rule_repository, chat, lexicon)

        up = await service.update_rule_accuracy(password_rule.id, True)
        assert up.accuracy == 93

        down = await service.update_rule_accuracy(password_rule.id, False)
        assert down.accuracy == 90
        assert (await rule_repository.get_rule(password_rule.id)).accuracy == 90

    async def test_update_unknown_rule(self, rule_repository, chat, lexicon):
        service = TicketRoutingService(rule_repository, chat, lexicon)

        with pytest.raises(ResourceNotFoundException):
            await service.update_rule_accuracy("missing", True)

    async def test_routing_accuracy(self, rule_repository, chat, lexicon):
        service = TicketRoutingService(rule_repository, chat, lexicon)
        assert await service.get_routing_accuracy() == 0

        await service.create_default_rules()

        # (85 + 90 + 88 + 92 + 87) / 5
        assert await service.get_routing_accuracy() == 88

    async def test_default_rules_installed_once(self, rule_repository, chat, lexicon):
        service = TicketRoutingService(rule_repository, chat, lexicon)

        assert await service.create_default_rules() == len(default_rules())
        assert await service.create_default_rules() == 0
        assert [r.name for r in await service.list_rules()][0] == "HR Leave Requests"


class TestTicketService:

    async def test_create_ticket_applies_routing(self, rule_repository, ticket_repository, chat, lexicon, password_rule):
        await rule_repository.create_rule(password_rule)
        service = TicketService(ticket_repository, TicketRoutingService(rule_repository, chat, lexicon))

        ticket, routing = await service.create_ticket("Forgot my password", "Can't log in", created_by="u-7")

        stored = await ticket_repository.get_by_id(ticket.id)
        assert stored.department == Department.IT
        assert stored.routing_confidence == routing.confidence
        assert stored.routing_rule_id == password_rule.id
        assert stored.created_by == "u-7"

    async def test_feedback_updates_routing_rule(self, rule_repository, ticket_repository, chat, lexicon, password_rule):
        await rule_repository.create_rule(password_rule)
        service = TicketService(ticket_repository, TicketRoutingService(rule_repository, chat, lexicon))
        ticket, _ = await service.create_ticket("Forgot my password", "Can't log in")

        feedback = await service.record_routing_feedback(ticket.id, was_correct=False)

        assert feedback.updated is True
        assert feedback.rule_id == password_rule.id
        assert feedback.accuracy == 85

    async def test_feedback_without_rule(self, rule_repository, ticket_repository, lexicon):
        service = TicketService(ticket_repository, TicketRoutingService(rule_repository, None, lexicon))
        ticket, _ = await service.create_ticket("Parking", "Where can I park?")

        feedback = await service.record_routing_feedback(ticket.id, was_correct=True)

        assert feedback.updated is False
        assert feedback.accuracy is None

    async def test_feedback_for_unknown_ticket(self, rule_repository, ticket_repository, lexicon):
        service = TicketService(ticket_repository, TicketRoutingService(rule_repository, None, lexicon))

        with pytest.raises(ResourceNotFoundException):
            await service.record_routing_feedback("missing", was_correct=True)


@pytest.mark.parametrize("value,expected", [
    ("IT", "IT"), ("hr", "HR"), (" Finance ", "Finance"), ("Legal", "General"), (None, "General"), (7, "General"),
])
def test_normalize_department(value, expected):
    assert normalize_department(value) == expected
