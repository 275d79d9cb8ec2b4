"""
Tests for LexiconConfig and its hot-reloading manager.
"""

import pytest
import yaml
from pydantic import ValidationError

from src.knowledge.domain import LexiconConfig
from src.knowledge.infrastructure import LexiconConfigManager


class TestLexiconConfig:

    def test_defaults(self):
        lexicon = LexiconConfig()

        assert "the" in lexicon.stop_words
        assert "nece" in lexicon.stop_words  # folded from "necə"
        assert lexicon.canned_default_confidence == 20
        assert [h.department for h in lexicon.department_heuristics] == ["IT", "HR", "Finance"]

    def test_terms_are_stored_folded(self):
        lexicon = LexiconConfig(synonyms={"Şəbəkə": ["Əlaqə", "Bağlantı"]})

        assert lexicon.synonyms == {"sebeke": ["elaqe", "baglanti"]}

    def test_fold_keys_must_be_single_characters(self):
        with pytest.raises(ValidationError):
            LexiconConfig(diacritic_folds={"ab": "c"})

    @pytest.mark.parametrize("question,topic,confidence", [
        ("How do I request vacation?", "leave", 60),
        ("Məzuniyyət üçün nə etməliyəm?", "leave", 60),
        ("I need a password reset", "password", 60),
        ("My computer will not start", "technical", 65),
        ("Where is the travel procedure?", "policy", 50),
    ])
    def test_canned_topics(self, question, topic, confidence):
        match = LexiconConfig().find_canned_topic(question)

        assert match is not None
        assert match.name == topic
        assert match.confidence == confidence

    def test_canned_topics_respect_priority(self):
        # both leave and password trigger; leave is listed first
        match = LexiconConfig().find_canned_topic("Forgot password for the vacation portal")

        assert match.name == "leave"

    def test_no_canned_topic(self):
        assert LexiconConfig().find_canned_topic("Where is the parking lot?") is None

    def test_extractive_topic(self):
        lexicon = LexiconConfig()

        assert lexicon.find_extractive_topic("Can I get a second monitor?").name == "hardware"
        assert lexicon.find_extractive_topic("VPN keeps dropping").name == "network"
        assert lexicon.find_extractive_topic("Where is the canteen?") is None

    @pytest.mark.parametrize("text,department", [
        ("Cannot access the network drive", "IT"),
        ("Question about my payroll", "HR"),
        ("Invoice was paid twice", "Finance"),
    ])
    def test_department_heuristics(self, text, department):
        assert LexiconConfig().find_department_heuristic(text).department == department

    def test_department_heuristics_from_config(self):
        lexicon = LexiconConfig(department_heuristics=[
            {"department": "Finance", "terms": ["Bütçə"], "reasoning": "budget"},
        ])

        match = lexicon.find_department_heuristic("Bütçə sualı")

        assert match.department == "Finance"
        assert match.confidence == 75


class TestLexiconConfigManager:

    @pytest.fixture
    def lexicon_file(self, tmp_path):
        path = tmp_path / "lexicon.yaml"
        path.write_text(yaml.safe_dump({"stop_words": ["foo"], "max_keywords": 4}), encoding="utf-8")
        return path

    def test_missing_file_uses_builtin_lexicon(self, tmp_path):
        manager = LexiconConfigManager()

        config = manager.load(tmp_path / "absent.yaml")

        assert config.stop_words == LexiconConfig().stop_words

    def test_load_from_file(self, lexicon_file):
        manager = LexiconConfigManager()
        manager.load(lexicon_file)

        assert manager.config.stop_words == ["foo"]
        assert manager.config.max_keywords == 4
        # tables not in the file keep their defaults
        assert manager.config.synonyms == LexiconConfig().synonyms

    def test_reload_picks_up_changes(self, lexicon_file):
        manager = LexiconConfigManager()
        manager.load(lexicon_file)

        lexicon_file.write_text(yaml.safe_dump({"stop_words": ["bar", "baz"]}), encoding="utf-8")

        assert manager.reload() is True
        assert manager.config.stop_words == ["bar", "baz"]

    @pytest.mark.parametrize("content", [
        "stop_words: [unclosed",
        "max_keywords: -5",
        "- just\n- a list\n",
    ])
    def test_broken_file_keeps_previous_lexicon(self, lexicon_file, content):
        manager = LexiconConfigManager()
        manager.load(lexicon_file)

        lexicon_file.write_text(content, encoding="utf-8")

        assert manager.reload() is False
        assert manager.config.stop_words == ["foo"]

    @pytest.mark.parametrize("content", [
        "stop_words: [unclosed",
        "max_keywords: -5",
        "- just\n- a list\n",
    ])
    def test_broken_file_at_startup_uses_builtin_lexicon(self, tmp_path, content):
        path = tmp_path / "lexicon.yaml"
        path.write_text(content, encoding="utf-8")
        manager = LexiconConfigManager()

        config = manager.load(path)

        assert config.stop_words == LexiconConfig().stop_words
        assert manager.config.max_keywords == LexiconConfig().max_keywords

        path.write_text(yaml.safe_dump({"stop_words": ["foo"]}), encoding="utf-8")
        assert manager.reload() is True
        assert manager.config.stop_words == ["foo"]

    def test_reload_before_load(self):
        assert LexiconConfigManager().reload() is False

    def test_config_before_load(self):
        with pytest.raises(RuntimeError):
            _ = LexiconConfigManager().config

    def test_watching_is_safe_to_stop(self, lexicon_file):
        manager = LexiconConfigManager()
        manager.load(lexicon_file)

        manager.start_watching()
        manager.stop_watching()
        manager.stop_watching()
