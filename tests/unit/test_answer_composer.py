"""
Tests for AnswerComposer.
"""

import pytest

from src.core import LLMException
from src.knowledge.application import AnswerComposer
from src.knowledge.domain import Chunk, ScoredChunk

from tests.conftest import completion


def _scored(text: str, similarity: float = 0.8) -> ScoredChunk:
    return ScoredChunk(chunk=Chunk(id="c1", document_id="doc-1", text=text), similarity=similarity)


HARDWARE_TEXT = (
    "Hardware Requests: New monitor requests must be approved by the direct manager. "
    "The canteen is on the ground floor. Equipment is delivered within five days."
)


class TestAnswerComposer:

    async def test_llm_answer(self, chat, lexicon):
        chat.chat_completion.return_value = completion("Ask your manager for approval.")
        composer = AnswerComposer(chat, lexicon)

        answer = await composer.compose("How do I get a monitor?", [_scored(HARDWARE_TEXT)])

        assert answer == "Ask your manager for approval."
        kwargs = chat.chat_completion.await_args.kwargs
        assert kwargs["operation"] == "qa_answer"
        assert HARDWARE_TEXT in kwargs["messages"][0]["content"]
        assert kwargs["messages"][1] == {"role": "user", "content": "How do I get a monitor?"}

    async def test_llm_not_called_without_chunks(self, chat, lexicon):
        composer = AnswerComposer(chat, lexicon)

        await composer.compose("Anything?", [])

        chat.chat_completion.assert_not_awaited()

    async def test_llm_failure_gives_extractive_answer(self, chat, lexicon):
        chat.chat_completion.side_effect = LLMException("rate limited")
        composer = AnswerComposer(chat, lexicon)

        answer = await composer.compose("How do I request a new monitor?", [_scored(HARDWARE_TEXT)])

        assert answer == (
            "Based on our IT policies: Hardware Requests: New monitor requests must be approved "
            "by the direct manager. Equipment is delivered within five days."
        )

    async def test_no_llm_gives_extractive_answer(self, lexicon):
        composer = AnswerComposer(None, lexicon)

        answer = await composer.compose("Why does my VPN keep disconnecting?", [
            _scored("VPN connection troubleshooting steps")
        ])

        assert answer == "Based on our IT policies: VPN connection troubleshooting steps."

    def test_topic_without_relevant_sentences(self, lexicon):
        composer = AnswerComposer(None, lexicon)

        answer = composer.extractive_answer("I forgot my password", [_scored("Call the desk.")])

        assert answer == "Based on our security documentation: Call the desk...."

    def test_generic_question(self, lexicon):
        composer = AnswerComposer(None, lexicon)
        text = "x" * 800

        answer = composer.extractive_answer("Where is the canteen?", [_scored(text)])

        assert answer.startswith("Based on our company documentation, here's what I found")
        assert answer.endswith("x" * 500 + "...")

    def test_scope_summary_without_ranked_chunks(self, lexicon):
        composer = AnswerComposer(None, lexicon)
        scope = [Chunk(id="c1", document_id="d1", text="Office hours are 9 to 5.")]

        answer = composer.extractive_answer("When is the office open?", [], scope)

        assert answer.startswith("Based on our company documentation: Office hours are 9 to 5.")
        assert "contact your department" in answer

    @pytest.mark.parametrize("question", ["Who approves travel?", ""])
    def test_nothing_to_go_on(self, lexicon, question):
        composer = AnswerComposer(None, lexicon)

        answer = composer.extractive_answer(question, [])

        assert f"\"{question}\"" in answer
        assert "HR or IT department" in answer
