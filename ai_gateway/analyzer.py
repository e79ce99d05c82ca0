"""
Task Analyzer
=============
Scores a free-text request for complexity and cost and derives the agent
roles and tools it needs. The keyword heuristic is cheap and deterministic;
it sits behind BaseTaskAnalyzer so a learned classifier can replace it without
touching the router or executor.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod

from .models import Priority, TaskAnalysis, TaskType

logger = logging.getLogger(__name__)


class BaseTaskAnalyzer(ABC):
    """Contract every task analyzer fulfils"""

    @abstractmethod
    def analyze(
        self, request: str, priority: Priority | str = Priority.BALANCED
    ) -> TaskAnalysis:
        """Classify a request. Must not raise and must not perform I/O."""
        pass


class KeywordTaskAnalyzer(BaseTaskAnalyzer):
    """Keyword and structure based task analyzer"""

    # Each entry counts once no matter how often it appears
    COMPLEXITY_KEYWORDS = {
        "refactor": r"\brefactor\w*",
        "architecture": r"\barchitect\w*",
        "optimize": r"\boptimi[sz]\w*",
        "security": r"\bsecur\w*",
        "performance": r"\bperformance\b",
        "integration": r"\bintegrat\w*",
        "complex": r"\bcomplex\w*",
        "advanced": r"\badvanced\b",
        "system": r"\bsystems?\b",
        "full": r"\bfull\b",
    }
    MAX_KEYWORD_BONUS = 5

    # "1. ", "2) " at a line start or after whitespace
    STEP_MARKER = re.compile(r"(?:^|\s)\d+[.)](?=\s)", re.MULTILINE)
    MAX_STEP_BONUS = 3

    LONG_REQUEST = 500
    MEDIUM_REQUEST = 200

    SIMPLE_MAX = 3
    MEDIUM_MAX = 7

    CAPABILITY_PATTERNS = {
        "architect": r"\b(design|architecture|structure|plan)\b",
        "backend": r"\b(api|backend|server|database)\b",
        "frontend": r"\b(ui|frontend|react|vue|interface)\b",
        "reviewer": r"\b(review|check|validate|quality)\b",
        "security": r"\b(security|secure|vulnerability|vulnerabilities|auth)\b",
        "tester": r"\b(test|tests|testing|unit test|e2e)\b",
        "devops": r"(\bdeploy\w*|ci/cd|\bdocker\b|\bkubernetes\b)",
        "optimizer": r"\b(optimi[sz]e|performance|speed)\b",
    }
    DEFAULT_CAPABILITY = "general"

    TOOL_PATTERNS = {
        "read_file": r"\b(read|show|display|view|file)\b",
        "write_file": r"\b(write|create|save|generate)\b",
        "edit_file": r"\b(edit|modify|update|change)\b",
        "list_directory": r"\b(list|directory|folder|files)\b",
        "execute_command": r"\b(run|execute|command|terminal)\b",
        "search_in_files": r"\b(search|find|grep|lookup)\b",
    }

    # Approximation: monotonic in type and capability count, not real pricing
    BASE_COST = {
        TaskType.SIMPLE: 0.01,
        TaskType.MEDIUM: 0.05,
        TaskType.COMPLEX: 0.15,
    }

    CAPABILITY_LIMIT = {
        TaskType.SIMPLE: 1,
        TaskType.MEDIUM: 3,
        TaskType.COMPLEX: None,
    }

    def analyze(
        self, request: str, priority: Priority | str = Priority.BALANCED
    ) -> TaskAnalysis:
        text = request if isinstance(request, str) else ""
        try:
            resolved_priority = Priority(priority)
        except ValueError:
            logger.warning(f"Unknown priority '{priority}', using balanced")
            resolved_priority = Priority.BALANCED

        complexity = self.score_complexity(text)
        task_type = self.classify(complexity)
        capabilities = self.select_capabilities(text, task_type)
        tools = self.select_tools(text)

        analysis = TaskAnalysis(
            type=task_type,
            complexity_score=complexity,
            required_capabilities=tuple(capabilities),
            required_tools=tuple(tools),
            estimated_cost=self.estimate_cost(task_type, len(capabilities)),
            priority=resolved_priority,
        )
        logger.debug(f"Task analysis: {analysis.to_dict()}")
        return analysis

    @classmethod
    def score_complexity(cls, text: str) -> int:
        """Heuristic complexity score in [1, 10]"""
        score = 1

        if len(text) > cls.LONG_REQUEST:
            score += 2
        elif len(text) > cls.MEDIUM_REQUEST:
            score += 1

        lowered = text.lower()
        keyword_hits = sum(
            1 for pattern in cls.COMPLEXITY_KEYWORDS.values() if re.search(pattern, lowered)
        )
        score += min(keyword_hits, cls.MAX_KEYWORD_BONUS)

        steps = len(cls.STEP_MARKER.findall(text))
        score += min(steps, cls.MAX_STEP_BONUS)

        return max(1, min(score, 10))

    @classmethod
    def classify(cls, complexity: int) -> TaskType:
        if complexity <= cls.SIMPLE_MAX:
            return TaskType.SIMPLE
        if complexity <= cls.MEDIUM_MAX:
            return TaskType.MEDIUM
        return TaskType.COMPLEX

    @classmethod
    def select_capabilities(cls, text: str, task_type: TaskType) -> list[str]:
        lowered = text.lower()
        capabilities = [
            name
            for name, pattern in cls.CAPABILITY_PATTERNS.items()
            if re.search(pattern, lowered)
        ]
        if not capabilities:
            capabilities = [cls.DEFAULT_CAPABILITY]

        limit = cls.CAPABILITY_LIMIT[task_type]
        return capabilities if limit is None else capabilities[:limit]

    @classmethod
    def select_tools(cls, text: str) -> list[str]:
        lowered = text.lower()
        return [
            name for name, pattern in cls.TOOL_PATTERNS.items() if re.search(pattern, lowered)
        ]

    @classmethod
    def estimate_cost(cls, task_type: TaskType, capability_count: int) -> float:
        return round(cls.BASE_COST[task_type] * max(capability_count, 1), 6)
