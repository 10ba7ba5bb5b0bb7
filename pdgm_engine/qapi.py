"""
QAPI audit builder.

Turns a validated, annotated analysis into the Quality Assessment and
Performance Improvement view used for agency QA review:
- missingInformation      -> incomplete elements (required gaps are high priority)
- inconsistencies and flagged issues of category "inconsistency"
                          -> contradictory elements
- flagged issues of category "compliance"/"regulatory"
                          -> regulatory deficiencies
- risk factors and corrections
                          -> recommendations
- everything else         -> recommendations
"""

from pdgm_engine.models import (
    ContradictoryElement,
    FlaggedIssue,
    IncompleteElement,
    OasisAnalysisResult,
    QapiAudit,
    QapiRecommendation,
    RegulatoryDeficiency,
)

COP_REGULATION = "CMS Conditions of Participation (42 CFR 484)"

_REGULATORY_CATEGORIES = {"compliance", "regulatory"}


def _severity(value: str | None) -> str:
    value = (value or "").lower()
    return value if value in ("critical", "high") else "medium"


def _priority(severity: str | None) -> str:
    return "high" if (severity or "").lower() in ("critical", "high") else "medium"


def _contradiction_from_issue(issue: FlaggedIssue) -> ContradictoryElement:
    location = issue.location or "Unknown"
    sides = location.split(" vs ")
    return ContradictoryElement(
        element_a=sides[0] if sides[0] else "Section A",
        element_b=sides[1] if len(sides) > 1 else "Section B",
        contradiction=issue.issue or "Data inconsistency detected",
        location=location,
        impact=issue.clinical_impact or "May affect care quality",
        recommendation=issue.suggestion or "Review and resolve inconsistency",
        severity=_severity(issue.severity),
    )


def build_qapi_audit(analysis: OasisAnalysisResult) -> QapiAudit:
    """Build the QAPI audit for one document from its analysis."""
    audit = QapiAudit()

    for rec in analysis.recommendations:
        audit.recommendations.append(QapiRecommendation(
            category=rec.category or "General",
            recommendation=rec.recommendation,
            priority=rec.priority or "medium",
        ))

    for conflict in analysis.inconsistencies:
        audit.contradictory_elements.append(ContradictoryElement(
            element_a=conflict.section_a or "Section A",
            element_b=conflict.section_b or "Section B",
            contradiction=conflict.conflict_type or "Data inconsistency detected",
            location=f"{conflict.section_a} vs {conflict.section_b}",
            impact=conflict.clinical_impact or "May affect care quality",
            recommendation=conflict.recommendation or "Review and resolve inconsistency",
            severity=_severity(conflict.severity),
        ))

    for issue in analysis.flagged_issues:
        category = (issue.category or "").lower()
        if category == "inconsistency":
            audit.contradictory_elements.append(_contradiction_from_issue(issue))
        elif category in _REGULATORY_CATEGORIES:
            audit.regulatory_deficiencies.append(RegulatoryDeficiency(
                deficiency=issue.issue or "Regulatory compliance issue",
                regulation=COP_REGULATION,
                severity=_severity(issue.severity),
                impact=issue.clinical_impact or "Compliance risk",
                recommendation=issue.suggestion or "Address compliance issue",
            ))
        else:
            audit.recommendations.append(QapiRecommendation(
                category=issue.category or "Quality Improvement",
                recommendation=issue.issue or issue.suggestion or "Review and address",
                priority=_priority(issue.severity),
            ))

    for risk in analysis.risk_factors:
        audit.recommendations.append(QapiRecommendation(
            category="Risk Mitigation",
            recommendation=risk.recommendation or f"Address risk factor: {risk.factor}",
            priority=_priority(risk.severity),
        ))

    for fix in analysis.corrections:
        change = f"{fix.field}: {fix.current or '(blank)'} -> {fix.suggested or '(blank)'}"
        audit.recommendations.append(QapiRecommendation(
            category="Documentation Correction",
            recommendation=f"{change} ({fix.reason})" if fix.reason else change,
            priority="high" if (fix.revenue_change or 0) > 0 else "medium",
        ))

    for gap in analysis.missing_information:
        audit.incomplete_elements.append(IncompleteElement(
            element=gap.field,
            location=gap.location,
            missing_information=gap.field,
            impact=gap.impact,
            recommendation=gap.recommendation,
            priority="high" if gap.required else "medium",
        ))

    return audit
