from __future__ import annotations

from typing import Literal, get_args


RiskLevel = Literal["High", "Medium", "Low"]
InstitutionStatus = Literal["Active", "Suspended", "Revoked", "Pending"]
Severity = Literal["High", "Medium", "Low"]
SurveillanceType = Literal["CDD", "Monitoring", "Sanctions", "Reporting", "Deficiency", "Other"]
FindingCategory = Literal[
    "Governance",
    "RiskManagement",
    "Compliance",
    "Operations",
    "Technology",
    "Reporting",
    "Other",
]
FindingStatus = Literal["Open", "InProgress", "Closed"]
ComplianceState = Literal["OK", "ATTENTION", "SUSPENDED"]
Role = Literal["Administrator", "Supervisor", "Entity"]

RISK_LEVELS: tuple[str, ...] = get_args(RiskLevel)
INSTITUTION_STATUSES: tuple[str, ...] = get_args(InstitutionStatus)
SEVERITIES: tuple[str, ...] = get_args(Severity)
SURVEILLANCE_TYPES: tuple[str, ...] = get_args(SurveillanceType)
FINDING_CATEGORIES: tuple[str, ...] = get_args(FindingCategory)
FINDING_STATUSES: tuple[str, ...] = get_args(FindingStatus)
ROLES: tuple[str, ...] = get_args(Role)

# Surveillance severity weights applied by the risk scoring engine.
SEVERITY_WEIGHTS: dict[str, int] = {"High": 3, "Medium": 2, "Low": 1}

# Score thresholds; a score at the boundary takes the higher level.
HIGH_RISK_THRESHOLD = 70
MEDIUM_RISK_THRESHOLD = 40
BASELINE_PROFILE_SCORE = 50.0
