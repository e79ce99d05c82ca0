"""Tests for the keyword task analyzer"""

import pytest

from ai_gateway.analyzer import KeywordTaskAnalyzer
from ai_gateway.models import Priority, TaskAnalysis, TaskType


@pytest.fixture
def analyzer():
    return KeywordTaskAnalyzer()


class TestComplexityScoring:
    """Score and type thresholds"""

    def test_short_question_is_simple(self, analyzer):
        analysis = analyzer.analyze("ما هو 2+2؟", Priority.SPEED)
        assert analysis.type == TaskType.SIMPLE
        assert analysis.complexity_score == 1
        assert analysis.priority == Priority.SPEED

    def test_length_tiers(self):
        assert KeywordTaskAnalyzer.score_complexity("a" * 200) == 1
        assert KeywordTaskAnalyzer.score_complexity("a" * 201) == 2
        assert KeywordTaskAnalyzer.score_complexity("a" * 501) == 3

    def test_keyword_counts_once(self):
        assert KeywordTaskAnalyzer.score_complexity("security security security") == 2

    def test_keyword_bonus_is_capped(self):
        text = "refactor architecture optimize security performance integration complex"
        assert KeywordTaskAnalyzer.score_complexity(text) == 1 + 5

    def test_step_markers_are_capped(self):
        text = "1. a 2. b 3. c 4. d 5. e"
        assert KeywordTaskAnalyzer.score_complexity(text) == 1 + 3

    def test_multi_step_architecture_task_is_complex(self, analyzer):
        request = (
            "Refactor the system architecture for performance and security, "
            "with a full integration plan:\n1. design\n2. review\n3. test"
        )
        analysis = analyzer.analyze(request)
        assert analysis.type == TaskType.COMPLEX
        assert analysis.complexity_score == 9

    def test_medium_task(self, analyzer):
        analysis = analyzer.analyze(
            "Optimize the complex database integration for better performance"
        )
        assert analysis.type == TaskType.MEDIUM
        assert analysis.complexity_score == 5

    def test_score_stays_in_range(self, analyzer):
        request = (
            "x" * 600
            + " refactor architecture optimize security performance integration"
            + " 1. a 2. b 3. c 4. d"
        )
        analysis = analyzer.analyze(request)
        assert analysis.complexity_score == 10

    def test_classify_boundaries(self):
        assert KeywordTaskAnalyzer.classify(3) == TaskType.SIMPLE
        assert KeywordTaskAnalyzer.classify(4) == TaskType.MEDIUM
        assert KeywordTaskAnalyzer.classify(7) == TaskType.MEDIUM
        assert KeywordTaskAnalyzer.classify(8) == TaskType.COMPLEX


class TestCapabilitiesAndTools:
    def test_general_fallback(self, analyzer):
        analysis = analyzer.analyze("Hello there")
        assert analysis.required_capabilities == ("general",)

    def test_simple_task_keeps_one_capability(self, analyzer):
        analysis = analyzer.analyze("Review the API")
        assert analysis.type == TaskType.SIMPLE
        assert analysis.required_capabilities == ("backend",)

    def test_medium_task_capabilities(self, analyzer):
        analysis = analyzer.analyze(
            "Optimize the complex database integration for better performance"
        )
        assert analysis.required_capabilities == ("backend", "optimizer")

    def test_tools_from_keywords(self, analyzer):
        analysis = analyzer.analyze("read the config file and search for errors")
        assert analysis.required_tools == ("read_file", "search_in_files")

    def test_no_tools_for_plain_question(self, analyzer):
        assert analyzer.analyze("What is the capital of France?").required_tools == ()


class TestCostEstimate:
    def test_cost_scales_with_type_and_capabilities(self):
        assert KeywordTaskAnalyzer.estimate_cost(TaskType.SIMPLE, 1) == 0.01
        assert KeywordTaskAnalyzer.estimate_cost(TaskType.MEDIUM, 2) == 0.1
        assert KeywordTaskAnalyzer.estimate_cost(TaskType.COMPLEX, 3) == 0.45

    def test_zero_capabilities_costs_base(self):
        assert KeywordTaskAnalyzer.estimate_cost(TaskType.COMPLEX, 0) == 0.15

    def test_analysis_cost(self, analyzer):
        analysis = analyzer.analyze(
            "Optimize the complex database integration for better performance"
        )
        assert analysis.estimated_cost == pytest.approx(0.1)


class TestRobustness:
    def test_empty_request(self, analyzer):
        analysis = analyzer.analyze("")
        assert analysis.type == TaskType.SIMPLE
        assert analysis.required_capabilities == ("general",)

    def test_non_string_request(self, analyzer):
        analysis = analyzer.analyze(None)
        assert analysis.type == TaskType.SIMPLE

    def test_unknown_priority_falls_back_to_balanced(self, analyzer):
        analysis = analyzer.analyze("hi", priority="cheapest")
        assert analysis.priority == Priority.BALANCED

    def test_deterministic(self, analyzer):
        request = "Design a secure backend API with tests"
        assert analyzer.analyze(request) == analyzer.analyze(request)


class TestTaskAnalysis:
    def test_score_is_clamped(self):
        analysis = TaskAnalysis(
            type=TaskType.COMPLEX,
            complexity_score=42,
            required_capabilities=("a",),
            required_tools=(),
            estimated_cost=0.1,
        )
        assert analysis.complexity_score == 10

    def test_collections_are_deduplicated(self):
        analysis = TaskAnalysis(
            type="simple",
            complexity_score=1,
            required_capabilities=["tester", "tester", "backend"],
            required_tools=["read_file", "read_file"],
            estimated_cost=0.0,
        )
        assert analysis.required_capabilities == ("tester", "backend")
        assert analysis.required_tools == ("read_file",)
        assert analysis.type == TaskType.SIMPLE

    def test_negative_cost_rejected(self):
        with pytest.raises(ValueError):
            TaskAnalysis(
                type=TaskType.SIMPLE,
                complexity_score=1,
                required_capabilities=(),
                required_tools=(),
                estimated_cost=-1,
            )
