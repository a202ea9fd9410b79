"""Workflows registered by default on every orchestrator."""

from ..core.types import ToolDeclaration
from .models import (
    ExecutionStrategy,
    ModelSelectionCriteria,
    StepKind,
    ValidationRule,
    Workflow,
    WorkflowStep,
)


def code_analysis_review() -> Workflow:
    return Workflow(
        id="code_analysis_review",
        name="Code Analysis and Review",
        description="Analyze code with one model and review with another",
        strategy=ExecutionStrategy.REVIEW_VALIDATE,
        steps=[
            WorkflowStep(
                id="analyze_code",
                name="Code Analysis",
                kind=StepKind.MODEL_GENERATION,
                selection_criteria=ModelSelectionCriteria(task_type="coding"),
                prompt=(
                    "Analyze the provided code for potential issues, improvements, "
                    "and documentation needs."
                ),
                options={"temperature": 0.3, "max_tokens": 500},
            ),
            WorkflowStep(
                id="review_analysis",
                name="Review Analysis",
                kind=StepKind.VALIDATION,
                dependencies=["analyze_code"],
                validation_rules=[ValidationRule(type="content", criteria="technical_accuracy")],
            ),
        ],
    )


def research_synthesis() -> Workflow:
    return Workflow(
        id="research_synthesis",
        name="Research and Synthesis",
        description="Gather information with multiple models and synthesize findings",
        strategy=ExecutionStrategy.CONSENSUS,
        steps=[
            WorkflowStep(
                id="gather_info",
                name="Information Gathering",
                kind=StepKind.TOOL_EXECUTION,
                selection_criteria=ModelSelectionCriteria(required_capabilities=["tool_calling"]),
                tools=[
                    ToolDeclaration(
                        name="web_search",
                        description="Search for information online",
                        parameters={
                            "type": "object",
                            "properties": {
                                "query": {"type": "string"},
                                "num_results": {"type": "number"},
                            },
                            "required": ["query"],
                        },
                    )
                ],
            ),
            WorkflowStep(
                id="synthesize",
                name="Synthesize Findings",
                kind=StepKind.AGGREGATION,
                dependencies=["gather_info"],
            ),
        ],
    )


def creative_writing_pipeline() -> Workflow:
    return Workflow(
        id="creative_writing_pipeline",
        name="Creative Writing Pipeline",
        description="Brainstorm, draft, and refine creative content",
        strategy=ExecutionStrategy.PIPELINE,
        steps=[
            WorkflowStep(
                id="brainstorm",
                name="Brainstorming",
                kind=StepKind.MODEL_GENERATION,
                selection_criteria=ModelSelectionCriteria(task_type="creative"),
                prompt="Generate creative ideas and concepts for the requested content.",
                options={"temperature": 0.8, "max_tokens": 300},
            ),
            WorkflowStep(
                id="draft",
                name="First Draft",
                kind=StepKind.MODEL_GENERATION,
                dependencies=["brainstorm"],
                prompt="Create a first draft based on the brainstormed ideas.",
                options={"temperature": 0.7, "max_tokens": 600},
            ),
            WorkflowStep(
                id="refine",
                name="Refinement",
                kind=StepKind.MODEL_GENERATION,
                dependencies=["draft"],
                prompt="Refine and improve the draft for clarity and impact.",
                options={"temperature": 0.5, "max_tokens": 400},
            ),
        ],
    )


def builtin_workflows() -> list[Workflow]:
    return [code_analysis_review(), research_synthesis(), creative_writing_pipeline()]
