"""structured response schemas for the triage, reasoning and deep stages"""

from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

TRIAGE_CLASSES = ("SAFE", "SUSPICIOUS", "DANGEROUS", "NEEDS_ANALYSIS")


class IssueSchema(BaseModel):
    """one issue as reported by a model"""

    category: str = Field(..., description="EXPLOIT, RUG_PULL, EXCESSIVE_COST or PERMISSION.")
    severity: str = Field(..., description="LOW, MEDIUM, HIGH or CRITICAL.")
    title: str = Field(..., description="Short issue title.")
    description: str = Field(default="", description="What the issue is and why it matters.")
    recommendation: str = Field(default="", description="What the user should do.")
    evidence: str = Field(default="", description="Specific evidence from the transaction.")
    attack_scenario: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("attack_scenario", "attackScenario"),
        description="Step-by-step attack description.",
    )
    model_config = ConfigDict(extra="allow")

    @field_validator("title", "description", "recommendation", "evidence")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class TriageResponse(BaseModel):
    """fast classification"""

    classification: Literal["SAFE", "SUSPICIOUS", "DANGEROUS", "NEEDS_ANALYSIS"] = Field(
        ..., description="Triage class of the transaction."
    )
    confidence: float = Field(..., ge=0.0, le=1.0, description="Model confidence in the classification.")
    quick_issues: List[IssueSchema] = Field(
        default_factory=list,
        validation_alias=AliasChoices("quick_issues", "quickIssues"),
        description="Obvious issues spotted during triage.",
    )
    reasoning: str = Field(default="", description="Brief explanation.")

    @field_validator("classification", mode="before")
    @classmethod
    def _upper(cls, value):
        if isinstance(value, str):
            return value.strip().upper().replace(" ", "_")
        return value


class ReasoningStep(BaseModel):
    question: str = Field(..., description="The question this step answers.")
    analysis: str = Field(default="", description="Reasoning for the step.")
    findings: List[str] = Field(default_factory=list)


class ReasoningResponse(BaseModel):
    """five-step structured analysis"""

    steps: List[ReasoningStep] = Field(default_factory=list)
    issues: List[IssueSchema] = Field(default_factory=list)
    overall_assessment: str = Field(
        ...,
        validation_alias=AliasChoices("overall_assessment", "overallAssessment"),
        description="Summary of the risk level.",
    )
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence in the assessment.")
    needs_deep_analysis: bool = Field(
        default=False,
        validation_alias=AliasChoices("needs_deep_analysis", "needsDeepAnalysis"),
        description="Whether the transaction warrants extended reasoning.",
    )


class DeepResponse(BaseModel):
    """extended thinking output"""

    deep_analysis: str = Field(
        default="",
        validation_alias=AliasChoices("deep_analysis", "deepAnalysis"),
        description="Comprehensive analysis.",
    )
    additional_issues: List[IssueSchema] = Field(
        default_factory=list,
        validation_alias=AliasChoices("additional_issues", "additionalIssues"),
    )
    final_risk_score: int = Field(
        default=50,
        ge=0,
        le=100,
        validation_alias=AliasChoices("final_risk_score", "finalRiskScore"),
    )
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
