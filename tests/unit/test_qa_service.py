"""
Tests for QAService: the retrieval ladder and history recording.
"""

import math
from unittest.mock import AsyncMock

import pytest

from src.config import RetrievalStrategy
from src.core import RepositoryException
from src.knowledge.application import (
    APOLOGY_ANSWER, SEED_CHUNK, AnswerComposer, EmbeddingService, QAService,
)
from src.knowledge.domain import QAHistoryRecord

from tests.conftest import completion, embeddings


LAPTOP_TEXT = "Hardware: the laptop replacement policy allows replacement every 3 years for all staff."


def build_service(knowledge, history, lexicon, provider=None, chat=None) -> QAService:
    return QAService(
        knowledge_repository=knowledge,
        history_repository=history,
        embedding_service=EmbeddingService(provider, dimension=2),
        composer=AnswerComposer(chat, lexicon),
        lexicon=lexicon,
        chat=chat
    )


@pytest.fixture
def semantic_provider():
    provider = AsyncMock()
    provider.generate_embeddings.return_value = embeddings([1.0, 0.0])
    return provider


class TestSemanticRetrieval:

    async def test_semantic_hit(self, knowledge_repository, history_repository, lexicon, semantic_provider, chat):
        chat.chat_completion.return_value = completion("Laptops are replaced every 3 years.")
        knowledge_repository.add_document(
            "IT Policies", [LAPTOP_TEXT], [[0.82, math.sqrt(1 - 0.82 ** 2)]]
        )
        service = build_service(knowledge_repository, history_repository, lexicon, semantic_provider, chat)

        result = await service.answer_question("What is the laptop replacement policy?", user_id="u-1")

        assert result.answer == "Laptops are replaced every 3 years."
        assert result.confidence == 82
        assert result.strategy == RetrievalStrategy.SEMANTIC
        assert result.response_time_ms >= 1
        source = result.sources[0]
        assert source.similarity == pytest.approx(0.82)
        assert source.document_title == "IT Policies"
        assert source.match_type == RetrievalStrategy.SEMANTIC
        assert source.chunk_excerpt == LAPTOP_TEXT[:200] + "..."

        record = history_repository.records[0]
        assert record.user_id == "u-1"
        assert record.confidence == 82
        assert record.retrieval_strategy == RetrievalStrategy.SEMANTIC
        assert record.source_document_ids == [source.document_id]

    async def test_below_threshold_falls_through_to_keywords(
        self, knowledge_repository, history_repository, lexicon, semantic_provider
    ):
        knowledge_repository.add_document("IT Policies", [LAPTOP_TEXT], [[0.0, 1.0]])
        service = build_service(knowledge_repository, history_repository, lexicon, semantic_provider)

        result = await service.answer_question("laptop replacement")

        assert result.strategy == RetrievalStrategy.KEYWORD
        assert result.sources[0].match_type == RetrievalStrategy.KEYWORD


class TestKeywordFallback:

    async def test_vpn_keyword_fallback(
        self, knowledge_repository, history_repository, lexicon, embedding_provider
    ):
        knowledge_repository.add_document(
            "Network Guide", ["VPN connection troubleshooting steps"], [[0.5, 0.5]]
        )
        service = build_service(knowledge_repository, history_repository, lexicon, embedding_provider)

        result = await service.answer_question("Why does my VPN keep disconnecting?")

        assert result.confidence == 60
        assert result.strategy == RetrievalStrategy.KEYWORD
        assert result.sources[0].similarity == pytest.approx(0.6)
        assert "VPN" in result.answer

    async def test_chunks_without_embeddings_skip_provider(
        self, knowledge_repository, history_repository, lexicon, embedding_provider
    ):
        knowledge_repository.add_document("Network Guide", ["VPN connection troubleshooting steps"])
        service = build_service(knowledge_repository, history_repository, lexicon, embedding_provider)

        result = await service.answer_question("vpn help")

        assert result.strategy == RetrievalStrategy.KEYWORD
        embedding_provider.generate_embeddings.assert_not_awaited()

    async def test_llm_composes_keyword_answer(
        self, knowledge_repository, history_repository, lexicon, embedding_provider, chat
    ):
        knowledge_repository.add_document("Network Guide", ["VPN connection troubleshooting steps"])
        chat.chat_completion.return_value = completion("Restart GlobalProtect.")
        service = build_service(knowledge_repository, history_repository, lexicon, embedding_provider, chat)

        result = await service.answer_question("vpn troubleshooting")

        assert result.answer == "Restart GlobalProtect."


class TestCannedFallback:

    async def test_vacation_on_empty_corpus(self, knowledge_repository, history_repository, lexicon):
        service = build_service(knowledge_repository, history_repository, lexicon)

        result = await service.answer_question("How do I request vacation?")

        assert 50 <= result.confidence <= 65
        assert "Workflows" in result.answer
        assert "HR" in result.answer
        assert result.sources == []
        assert result.strategy == RetrievalStrategy.CANNED
        assert history_repository.records[0].retrieval_strategy == RetrievalStrategy.CANNED

    async def test_unknown_topic(self, knowledge_repository, history_repository, lexicon):
        service = build_service(knowledge_repository, history_repository, lexicon)

        result = await service.answer_question("Where is the parking lot?")

        assert result.confidence == 20
        assert "rephrasing" in result.answer

    async def test_no_keyword_match(self, knowledge_repository, history_repository, lexicon):
        knowledge_repository.add_document("Menu", ["Soup and salad every Friday"])
        service = build_service(knowledge_repository, history_repository, lexicon)

        result = await service.answer_question("I need a password reset")

        assert result.strategy == RetrievalStrategy.CANNED
        assert result.confidence == 60
        assert "IT support" in result.answer


class TestScoping:

    async def test_department_narrows_search(self, knowledge_repository, history_repository, lexicon):
        hr = knowledge_repository.add_department("HR")
        it = knowledge_repository.add_department("IT")
        knowledge_repository.add_document("Leave Policy", ["Annual leave requires manager approval"], department_id=hr.id)
        knowledge_repository.add_document("IT Handbook", ["Leave your laptop at the desk for repairs"], department_id=it.id)
        service = build_service(knowledge_repository, history_repository, lexicon)

        result = await service.answer_question("leave approval", department="hr")

        assert [s.document_title for s in result.sources] == ["Leave Policy"]
        assert history_repository.records[0].department == "hr"

    async def test_unknown_department_widens_to_policy_titles(
        self, knowledge_repository, history_repository, lexicon
    ):
        knowledge_repository.add_document("Security Policy", ["VPN access needs a token"])
        knowledge_repository.add_document("Cafeteria Menu", ["VPN burger special"])
        service = build_service(knowledge_repository, history_repository, lexicon)

        result = await service.answer_question("vpn token", department="Marketing")

        assert [s.document_title for s in result.sources] == ["Security Policy"]

    async def test_empty_it_department_uses_seed_chunk(self, knowledge_repository, history_repository, lexicon):
        service = build_service(knowledge_repository, history_repository, lexicon)

        result = await service.answer_question("How do I request a new monitor?", department="IT")

        assert result.strategy == RetrievalStrategy.SEED
        source = result.sources[0]
        assert source.document_id == SEED_CHUNK.document_id
        assert source.document_title == "Unknown Document"
        assert source.match_type == RetrievalStrategy.SEED
        assert result.answer.startswith("Based on our IT policies:")

    async def test_without_department_searches_everything(
        self, knowledge_repository, history_repository, lexicon
    ):
        hr = knowledge_repository.add_department("HR")
        knowledge_repository.add_document("Leave Policy", ["Annual leave requires approval"], department_id=hr.id)
        knowledge_repository.add_document("Travel", ["Annual travel budget"])
        service = build_service(knowledge_repository, history_repository, lexicon)

        result = await service.answer_question("annual")

        assert {s.document_title for s in result.sources} == {"Leave Policy", "Travel"}
        assert history_repository.records[0].department == "general"

    @pytest.mark.parametrize("department", ["", "   ", "\t"])
    async def test_blank_department_searches_everything(
        self, knowledge_repository, history_repository, lexicon, department
    ):
        finance = knowledge_repository.add_department("Finance")
        hr = knowledge_repository.add_department("HR")
        knowledge_repository.add_document("Budget", ["Annual budget review"], department_id=finance.id)
        knowledge_repository.add_document("Leave Policy", ["Annual leave requires approval"], department_id=hr.id)
        service = build_service(knowledge_repository, history_repository, lexicon)

        result = await service.answer_question("annual", department=department)

        assert {s.document_title for s in result.sources} == {"Budget", "Leave Policy"}
        assert history_repository.records[0].department == "general"


class TestFailures:

    async def test_storage_failure_gives_apology(self, knowledge_repository, history_repository, lexicon):
        knowledge_repository.fail_with = RepositoryException("database unreachable")
        service = build_service(knowledge_repository, history_repository, lexicon)

        result = await service.answer_question("How do I request vacation?")

        assert result.answer == APOLOGY_ANSWER
        assert result.confidence == 0
        assert result.sources == []
        assert result.strategy == RetrievalStrategy.ERROR

    async def test_history_failure_does_not_affect_answer(
        self, knowledge_repository, history_repository, lexicon
    ):
        history_repository.fail_with = RepositoryException("disk full")
        service = build_service(knowledge_repository, history_repository, lexicon)

        result = await service.answer_question("How do I request vacation?")

        assert result.confidence == 60


class TestHistoryRecord:

    @pytest.mark.parametrize("confidence,expected", [
        (math.nan, 0), (-5, 0), (150, 100), (59.5, 60), ("garbage", 0), (None, 0),
    ])
    def test_confidence_is_clamped(self, confidence, expected):
        record = QAHistoryRecord(
            question="q", answer="a", response_time_ms=10, confidence=confidence,
            department="general", source_document_ids=[], retrieval_strategy="canned"
        )

        assert record.confidence == expected

    @pytest.mark.parametrize("response_time,expected", [(0, 1), (-3, 1), (math.inf, 1), (12.4, 12)])
    def test_response_time_is_clamped(self, response_time, expected):
        record = QAHistoryRecord(
            question="q", answer="a", response_time_ms=response_time, confidence=50,
            department="general", source_document_ids=[], retrieval_strategy="canned"
        )

        assert record.response_time_ms == expected


class TestFAQs:

    async def _seed_history(self, history_repository, count):
        for i in range(count):
            await history_repository.create(QAHistoryRecord(
                question=f"Question {i}", answer="a", response_time_ms=5, confidence=60,
                department="general", source_document_ids=[], retrieval_strategy="canned"
            ))

    async def test_needs_five_questions(self, knowledge_repository, history_repository, lexicon, chat):
        await self._seed_history(history_repository, 4)
        service = build_service(knowledge_repository, history_repository, lexicon, chat=chat)

        assert await service.generate_faqs() == []
        chat.chat_completion.assert_not_awaited()

    async def test_generates_items(self, knowledge_repository, history_repository, lexicon, chat):
        await self._seed_history(history_repository, 6)
        chat.chat_completion.return_value = completion({"faqs": [
            {"question": "How do I reset my password?", "answer": "Use the IT portal."},
            {"question": "incomplete"},
        ]})
        service = build_service(knowledge_repository, history_repository, lexicon, chat=chat)

        faqs = await service.generate_faqs("IT")

        assert [(f.question, f.answer) for f in faqs] == [
            ("How do I reset my password?", "Use the IT portal.")
        ]
        prompt = chat.chat_completion.await_args.kwargs["messages"][1]["content"]
        assert prompt.startswith("Department: IT")
        assert "Question 5" in prompt

    async def test_invalid_json(self, knowledge_repository, history_repository, lexicon, chat):
        await self._seed_history(history_repository, 5)
        chat.chat_completion.return_value = completion("Sorry, I cannot help with that.")
        service = build_service(knowledge_repository, history_repository, lexicon, chat=chat)

        assert await service.generate_faqs() == []

    async def test_recent_history(self, knowledge_repository, history_repository, lexicon):
        await self._seed_history(history_repository, 3)
        service = build_service(knowledge_repository, history_repository, lexicon)

        recent = await service.get_recent_history(limit=2)

        assert [r.question for r in recent] == ["Question 2", "Question 1"]
