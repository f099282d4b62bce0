from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from amlguard.domain.entities import HistoryEvent, License, RegistryEntity
from amlguard.domain.records import (
    ComplianceStatusRecord,
    InspectionFinding,
    Institution,
    Intervention,
    RiskProfile,
    SurveillanceLog,
    utc_now,
)
from amlguard.domain.supervision import (
    ActivityLog,
    PerformanceAnomaly,
    PerformanceMetrics,
    PerformanceTarget,
    Supervisor,
    SupervisorCase,
)
from amlguard.domain.trail import RetentionPolicy, TrailRecord


@dataclass(frozen=True)
class DemoInstitution:
    id: str
    name: str
    license_number: str
    category: str
    status: str
    risk_level: str
    risk_score: int
    created_days_ago: int
    updated_days_ago: int


DEMO_INSTITUTIONS: tuple[DemoInstitution, ...] = (
    DemoInstitution("mem-cbz", "CBZ Bank Limited", "RBZ/BK/0001", "Bank", "Active", "Medium", 68, 120, 2),
    DemoInstitution("mem-stanbic", "Stanbic Bank Zimbabwe Limited", "RBZ/BK/0002", "Bank", "Active", "Low", 55, 200, 10),
    DemoInstitution("mem-fbc", "FBC Bank Limited", "RBZ/BK/0003", "Bank", "Active", "Medium", 62, 180, 4),
    DemoInstitution("mem-nmb", "NMB Bank Limited", "RBZ/BK/0004", "Bank", "Active", "Medium", 60, 150, 7),
    DemoInstitution("mem-bancabc", "BancABC Zimbabwe", "RBZ/BK/0005", "Bank", "Active", "High", 78, 220, 1),
    DemoInstitution("mem-steward", "Steward Bank Limited", "RBZ/BK/0006", "Bank", "Active", "High", 81, 300, 3),
    DemoInstitution("mem-zb", "ZB Bank Limited", "RBZ/BK/0007", "Bank", "Active", "Medium", 64, 90, 5),
    DemoInstitution("mem-firstcapital", "First Capital Bank Zimbabwe", "RBZ/BK/0008", "Bank", "Active", "Low", 52, 60, 8),
    DemoInstitution("mem-ecobank", "Ecobank Zimbabwe", "RBZ/BK/0009", "Bank", "Active", "Medium", 59, 210, 6),
    DemoInstitution("mem-nedbank", "Nedbank Zimbabwe", "RBZ/BK/0010", "Bank", "Active", "Low", 50, 400, 9),
    DemoInstitution("mem-posb", "People's Own Savings Bank (POSB)", "RBZ/BK/0011", "Bank", "Active", "Medium", 58, 365, 12),
    DemoInstitution("mem-abc-brokers", "ABC Brokers", "ZSE/BR/0001", "Stockbroker", "Active", "Medium", 68, 240, 14),
    DemoInstitution("mem-xyz-capital", "XYZ Capital", "ZSE/IM/0002", "Investment Manager", "Active", "High", 82, 260, 11),
    DemoInstitution("mem-safecustody", "SafeCustody Ltd", "ZSE/CU/0003", "Custodian", "Suspended", "Low", 55, 330, 20),
)


@dataclass
class DemoDataset:
    institutions: list[Institution] = field(default_factory=list)
    risk_profiles: list[RiskProfile] = field(default_factory=list)
    surveillance_logs: list[SurveillanceLog] = field(default_factory=list)
    inspection_findings: list[InspectionFinding] = field(default_factory=list)
    compliance_status: list[ComplianceStatusRecord] = field(default_factory=list)
    interventions: list[Intervention] = field(default_factory=list)


def build_demo_dataset(now: datetime | None = None) -> DemoDataset:
    """Build the demo dataset with timestamps relative to ``now``."""
    now = now or utc_now()
    dataset = DemoDataset()
    for item in DEMO_INSTITUTIONS:
        dataset.institutions.append(
            Institution(
                id=item.id,
                name=item.name,
                license_number=item.license_number,
                category=item.category,
                status=item.status,
                risk_level=item.risk_level,
                risk_score=item.risk_score,
                created_at=now - timedelta(days=item.created_days_ago),
                updated_at=now - timedelta(days=item.updated_days_ago),
            )
        )

    dataset.risk_profiles.extend(
        [
            RiskProfile("rp-abc-1", "mem-abc-brokers", "Medium", 68, now, now, now),
            RiskProfile("rp-xyz-1", "mem-xyz-capital", "High", 82, now, now, now),
            RiskProfile("rp-safe-1", "mem-safecustody", "Low", 55, now, now, now),
            RiskProfile("rp-cbz-1", "mem-cbz", "Medium", 66, now - timedelta(days=95), now, now),
            RiskProfile("rp-cbz-2", "mem-cbz", "Medium", 68, now - timedelta(days=35), now, now),
            RiskProfile("rp-steward-1", "mem-steward", "High", 79, now - timedelta(days=400), now, now),
            RiskProfile("rp-steward-2", "mem-steward", "High", 81, now - timedelta(days=60), now, now),
        ]
    )
    dataset.compliance_status.extend(
        [
            ComplianceStatusRecord("mem-abc-brokers", "OK", 10, 2, 1),
            ComplianceStatusRecord("mem-xyz-capital", "ATTENTION", 7, 4, 2),
            ComplianceStatusRecord("mem-safecustody", "SUSPENDED", 3, 8, 1),
        ]
    )
    dataset.surveillance_logs.extend(
        [
            SurveillanceLog(
                "sv-abc-1",
                "mem-abc-brokers",
                "Monitoring",
                "Medium",
                "Unusual transaction pattern detected",
                now - timedelta(days=10),
                now,
            ),
            SurveillanceLog(
                "sv-xyz-1",
                "mem-xyz-capital",
                "CDD",
                "High",
                "CDD gaps for high-risk clients",
                now - timedelta(days=5),
                now,
            ),
            SurveillanceLog(
                "sv-safe-1",
                "mem-safecustody",
                "Reporting",
                "Low",
                "Late STR submission by 1 day",
                now - timedelta(days=2),
                now,
            ),
        ]
    )
    dataset.inspection_findings.extend(
        [
            InspectionFinding(
                "if-abc-1",
                "mem-abc-brokers",
                "Compliance",
                "High",
                "KYC file completeness below threshold",
                "Remediate KYC files",
                now + timedelta(days=30),
                "Open",
                now,
            ),
            InspectionFinding(
                "if-xyz-1",
                "mem-xyz-capital",
                "RiskManagement",
                "Medium",
                "Missing scenario analysis documentation",
                "Provide documentation",
                now + timedelta(days=14),
                "InProgress",
                now,
            ),
            InspectionFinding(
                "if-safe-1",
                "mem-safecustody",
                "Operations",
                "Low",
                "Backup job missing weekly report",
                "Attach weekly report",
                now + timedelta(days=21),
                "Open",
                now,
            ),
        ]
    )
    dataset.interventions.extend(
        [
            Intervention("iv-abc-1", "mem-abc-brokers", "Onsite", 4, now - timedelta(days=20)),
            Intervention("iv-xyz-1", "mem-xyz-capital", "Offsite", 2, now - timedelta(days=7)),
        ]
    )
    return dataset


@dataclass(frozen=True)
class DemoEntity:
    id: str
    name: str
    type: str
    status: str
    license_number: str
    registration_number: str
    primary_contact_name: str
    expires_in_days: int
    compliance_score: int | None
    risk_level: str | None


DEMO_ENTITIES: tuple[DemoEntity, ...] = (
    DemoEntity("ENT-1", "Harare Stockbrokers Limited", "Stockbroker", "Active", "SECZ/SB/0101", "CR-1001/2009", "Tendai Moyo", 240, 88, "Low"),
    DemoEntity("ENT-2", "Capital Markets Investment Managers", "Investment Manager", "Active", "SECZ/IM/0102", "CR-1002/2011", "Rudo Chikwanha", 45, 72, "Medium"),
    DemoEntity("ENT-3", "Kariba Securities Limited", "Custodian", "Suspended", "SECZ/CU/0103", "CR-1003/2014", "Farai Ncube", 120, 54, "High"),
    DemoEntity("ENT-4", "Victoria Falls Capital", "Market Operator", "Active", "SECZ/MO/0104", "CR-1004/2016", "Nyasha Sibanda", 80, 91, "Low"),
    DemoEntity("ENT-5", "Gweru Investment Advisors", "Investment Advisor", "Pending", "SECZ/IA/0105", "CR-1005/2021", "Tatenda Mlambo", 365, None, None),
    DemoEntity("ENT-6", "Masvingo Portfolio Managers", "Portfolio Manager", "Revoked", "SECZ/PM/0106", "CR-1006/2012", "Chipo Dube", -30, 41, "High"),
    DemoEntity("ENT-7", "ZimGold Securities", "Stockbroker", "Active", "SECZ/SB/0107", "CR-1007/2018", "Blessing Zhou", 10, 67, "Medium"),
    DemoEntity("ENT-8", "Southern Cross Brokers", "Stockbroker", "Expired", "SECZ/SB/0108", "CR-1008/2010", "Kudzai Mutasa", -5, 60, "Medium"),
)


def build_registry_entities(now: datetime | None = None) -> list[RegistryEntity]:
    now = now or utc_now()
    today = now.date()
    entities = []
    for item in DEMO_ENTITIES:
        expiry = today + timedelta(days=item.expires_in_days)
        issue = expiry - timedelta(days=365 * 3)
        entities.append(
            RegistryEntity(
                id=item.id,
                name=item.name,
                type=item.type,
                status=item.status,
                license=License(
                    license_number=item.license_number,
                    issue_date=issue,
                    expiry_date=expiry,
                    status=item.status,
                ),
                registration_number=item.registration_number,
                primary_contact_name=item.primary_contact_name,
                compliance_score=item.compliance_score,
                risk_level=item.risk_level,
                history=[
                    HistoryEvent(
                        id=f"HIST-{item.id}-1",
                        type="License Issued",
                        title="License Issued",
                        description="Initial licence issued",
                        occurred_on=issue,
                        performed_by="SECZim Licensing",
                    )
                ],
                created_at=now - timedelta(days=365 * 3),
                updated_at=now - timedelta(days=7),
            )
        )
    return entities


# Supervisor roster: (id, first, last, rank, department, specializations, max load,
# active cases, completed cases, hours since last activity).
_SUPERVISOR_ROWS = (
    ("SUP-001", "Tendai", "Moyo", "SENIOR_SUPERVISOR", "AML Compliance & Enforcement",
     ("STR_REVIEW", "COMPLIANCE_ASSESSMENT", "ENFORCEMENT_ACTION"), 25, 23, 4, 3),
    ("SUP-002", "Rumbidzai", "Ncube", "SENIOR_SUPERVISOR", "Licensing & Authorization",
     ("LICENSE_APPLICATION", "LICENSE_RENEWAL", "RISK_ASSESSMENT"), 30, 18, 6, 5),
    ("SUP-003", "Kudakwashe", "Mlambo", "SUPERVISOR", "Onsite Inspections",
     ("ONSITE_INSPECTION", "DESK_REVIEW"), 20, 18, 2, 20),
    ("SUP-004", "Tariro", "Sibanda", "SUPERVISOR", "Complaints & Investigations",
     ("COMPLAINT_INVESTIGATION", "DESK_REVIEW"), 18, 12, 3, 60),
    ("SUP-005", "Chipo", "Dube", "JUNIOR_SUPERVISOR", "AML Compliance & Enforcement",
     ("DESK_REVIEW", "COMPLIANCE_ASSESSMENT"), 15, 5, 2, 8),
    ("SUP-006", "Farai", "Chidzonga", "TEAM_LEAD", "Risk Assessment Unit",
     ("RISK_ASSESSMENT", "COMPLIANCE_ASSESSMENT", "STR_REVIEW"), 22, 14, 5, 2),
    ("SUP-007", "Rutendo", "Gumbo", "SUPERVISOR", "Licensing & Authorization",
     ("LICENSE_APPLICATION", "LICENSE_RENEWAL"), 20, 12, 4, 12),
    ("SUP-008", "Tinashe", "Khumalo", "JUNIOR_SUPERVISOR", "Onsite Inspections",
     ("ONSITE_INSPECTION",), 12, 4, 1, 80),
)

# (supervisor, total, pending, completed, overdue, approval %, avg response h, quality,
#  consistency, accuracy, inspection completion %, feedback 1-5)
_CURRENT_METRICS = (
    ("SUP-001", 23, 3, 18, 1, 77.78, 156, 88, 92, 85, 80, 4.2),
    ("SUP-002", 28, 2, 24, 0, 83.33, 132, 92, 90, 94, 100, 4.5),
    ("SUP-003", 18, 4, 13, 2, 69.23, 198, 79, 82, 76, 75, 3.9),
    ("SUP-004", 16, 3, 12, 1, 75.0, 180, 83, 85, 81, 100, 4.1),
    ("SUP-005", 12, 2, 9, 0, 77.78, 144, 86, 88, 84, 100, 4.3),
    ("SUP-006", 20, 2, 17, 0, 82.35, 120, 90, 93, 87, 100, 4.6),
    ("SUP-007", 19, 3, 15, 1, 73.33, 168, 85, 87, 83, 66.67, 4.0),
    ("SUP-008", 10, 2, 7, 0, 71.43, 192, 81, 84, 78, 80, None),
)
# (supervisor, avg response h, quality, completed) for the previous period.
_PREVIOUS_METRICS = (
    ("SUP-001", 150, 87, 17),
    ("SUP-002", 128, 91, 23),
    ("SUP-003", 130, 80, 14),
    ("SUP-004", 170, 84, 12),
    ("SUP-005", 140, 85, 10),
    ("SUP-006", 118, 89, 16),
    ("SUP-007", 160, 98, 15),
    ("SUP-008", 110, 82, 8),
)


@dataclass
class SupervisorDataset:
    supervisors: list[Supervisor] = field(default_factory=list)
    cases: list[SupervisorCase] = field(default_factory=list)
    metrics: list[PerformanceMetrics] = field(default_factory=list)
    targets: list[PerformanceTarget] = field(default_factory=list)
    activity: list[ActivityLog] = field(default_factory=list)
    anomalies: list[PerformanceAnomaly] = field(default_factory=list)


def _metrics_row(
    row: tuple, *, period_start: datetime, period_end: datetime
) -> PerformanceMetrics:
    (sup_id, total, pending, completed, overdue, approval, response, quality,
     consistency, accuracy, inspections, feedback) = row
    return PerformanceMetrics(
        supervisor_id=sup_id,
        period_start=period_start,
        period_end=period_end,
        total_cases=total,
        pending_cases=pending,
        completed_cases=completed,
        overdue_cases=overdue,
        approval_rate=approval,
        avg_response_hours=response,
        quality_score=quality,
        decision_consistency_score=consistency,
        accuracy_score=accuracy,
        inspection_completion_rate=inspections,
        avg_entity_feedback_score=feedback,
    )


def build_supervisor_dataset(now: datetime | None = None) -> SupervisorDataset:
    """Supervisor roster, cases and two metric periods relative to ``now``."""
    now = now or utc_now()
    dataset = SupervisorDataset()
    case_seq = 0
    active_statuses = ("ASSIGNED", "IN_REVIEW", "ASSIGNED", "PENDING_DECISION")
    for (sup_id, first, last, rank, department, specs, max_load, active, done, idle_hours) in _SUPERVISOR_ROWS:
        dataset.supervisors.append(
            Supervisor(sup_id, first, last, f"{first.lower()}.{last.lower()}@seczim.gov.zw",
                       rank, department, list(specs), max_load)
        )
        for index in range(active + done):
            case_seq += 1
            case_type = specs[index % len(specs)]
            finished = index >= active
            assigned = now - timedelta(days=3 + index)
            dataset.cases.append(
                SupervisorCase(
                    id=f"CASE-{case_seq:03d}",
                    case_number=f"{case_type[:3]}-{now.year}-{case_seq:04d}",
                    supervisor_id=sup_id,
                    entity_name=DEMO_INSTITUTIONS[case_seq % len(DEMO_INSTITUTIONS)].name,
                    case_type=case_type,
                    status="APPROVED" if finished else active_statuses[index % len(active_statuses)],
                    priority=("CRITICAL", "HIGH", "MEDIUM", "LOW")[index % 4],
                    assigned_at=assigned,
                    due_at=assigned + timedelta(days=14),
                    completed_at=assigned + timedelta(days=5) if finished else None,
                    decision_type="APPROVE" if finished else None,
                    updated_at=assigned,
                )
            )
        dataset.activity.append(
            ActivityLog(
                id=f"ACT-{sup_id}",
                supervisor_id=sup_id,
                activity_type="CASE_REVIEWED",
                occurred_at=now - timedelta(hours=idle_hours),
                description="Case file reviewed",
            )
        )

    current_start = now - timedelta(days=30)
    previous_start = now - timedelta(days=60)
    for row in _CURRENT_METRICS:
        dataset.metrics.append(_metrics_row(row, period_start=current_start, period_end=now))
    current_by_id = {row[0]: row for row in _CURRENT_METRICS}
    for sup_id, response, quality, completed in _PREVIOUS_METRICS:
        base = list(current_by_id[sup_id])
        base[3], base[6], base[7] = completed, response, quality
        dataset.metrics.append(
            _metrics_row(tuple(base), period_start=previous_start, period_end=current_start)
        )

    dataset.targets.extend(
        [
            PerformanceTarget("TGT-001", "avgResponseTime", 120, 150, 180, "hours"),
            PerformanceTarget("TGT-002", "qualityScore", 85, 80, 75, "score"),
            PerformanceTarget("TGT-003", "completedCases", 15, 12, 10, "cases"),
            PerformanceTarget("TGT-004", "overdueCases", 0, 1, 2, "cases"),
            PerformanceTarget("TGT-005", "inspectionCompletionRate", 90, 80, 70, "percentage"),
        ]
    )
    dataset.anomalies.append(
        PerformanceAnomaly(
            id="ANOM-001",
            supervisor_id="SUP-003",
            supervisor_name="Kudakwashe Mlambo",
            anomaly_type="OVERDUE_CASES_THRESHOLD",
            severity="HIGH",
            detected_at=now - timedelta(days=1),
            description="Supervisor has 2 overdue cases exceeding the threshold of 1",
            current_value=2,
            expected_value=0,
            threshold=1,
            deviation=100,
            recommendations=[
                "Review case assignments and priorities",
                "Consider workload rebalancing",
            ],
        )
    )
    return dataset


# (hours ago, category, action, entity type, entity id, entity name, user id, result,
#  level, duration ms, session, description)
_TRAIL_ROWS = (
    (0.5, "AUTHENTICATION", "LOGIN", "USER", "usr_002", "Samkheliso Dube", "usr_002", "SUCCESS", "INFO", 320, "sess-201", "User logged in successfully"),
    (1.5, "ENTITY_MANAGEMENT", "ENTITY_UPDATED", "ENTITY", "ENT-2", "Capital Markets Investment Managers", "usr_002", "SUCCESS", "INFO", 540, "sess-201", "Updated primary contact details"),
    (3, "RISK_ASSESSMENT", "RISK_RATING_CHANGED", "ENTITY", "ENT-3", "Kariba Securities Limited", "usr_005", "SUCCESS", "WARNING", 870, "sess-202", "Risk rating raised from Medium to High"),
    (5, "AUTHENTICATION", "LOGIN_FAILED", "USER", "usr_003", "Makanaka Elara", "usr_003", "FAILURE", "WARNING", None, "sess-203", "Invalid password supplied"),
    (6, "AUTHENTICATION", "LOGIN_FAILED", "USER", "usr_003", "Makanaka Elara", "usr_003", "FAILURE", "ERROR", None, "sess-203", "Account temporarily locked after repeated failures"),
    (26, "ENTITY_MANAGEMENT", "ENTITY_SUSPENDED", "ENTITY", "ENT-3", "Kariba Securities Limited", "usr_001", "SUCCESS", "CRITICAL", 1200, "sess-204", "Licence suspended pending investigation"),
    (30, "DATA_ACCESS", "READ", "REPORT", "RPT-17", "Quarterly AML Report", "usr_005", "SUCCESS", "INFO", 150, "sess-202", "Viewed quarterly AML report"),
    (50, "EXPORT", "DATA_EXPORTED", "REPORT", "RPT-17", "Quarterly AML Report", "usr_001", "SUCCESS", "INFO", 2300, "sess-204", "Exported report to CSV"),
    (24 * 10, "CASE_MANAGEMENT", "DECISION_MADE", "CASE", "CASE-004", "ZB Bank Limited", "usr_002", "SUCCESS", "INFO", 640, "sess-180", "Approved licence renewal application"),
    (24 * 40, "SYSTEM_CONFIGURATION", "THRESHOLD_UPDATED", "THRESHOLD", "TGT-004", "Overdue cases target", "usr_001", "SUCCESS", "WARNING", 410, "sess-150", "Overdue case threshold lowered to 1"),
    (24 * 120, "AUTHENTICATION", "LOGOUT", "USER", "usr_004", "System Administrator", "usr_004", "SUCCESS", "DEBUG", 90, "sess-101", "User logged out"),
    (24 * 400, "DATA_MODIFICATION", "UPDATE", "ENTITY", "ENT-8", "Southern Cross Brokers", "usr_004", "PARTIAL", "ERROR", 3100, "sess-050", "Bulk update partially applied"),
)
_TRAIL_USERS = {
    "usr_001": ("Brian Guvava", "Administrator"),
    "usr_002": ("Samkheliso Dube", "Supervisor"),
    "usr_003": ("Makanaka Elara", "Entity"),
    "usr_004": ("System Administrator", "Administrator"),
    "usr_005": ("AML Supervisor", "Supervisor"),
}


def build_audit_trail_records(now: datetime | None = None) -> list[TrailRecord]:
    """Unsealed trail records ordered oldest first."""
    now = now or utc_now()
    records = []
    for index, row in enumerate(reversed(_TRAIL_ROWS), start=1):
        (hours, category, action, entity_type, entity_id, entity_name, user_id, result,
         level, duration, session, description) = row
        user_name, user_role = _TRAIL_USERS[user_id]
        records.append(
            TrailRecord(
                id=f"AUD-{index:04d}",
                timestamp=now - timedelta(hours=hours),
                category=category,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                entity_name=entity_name,
                user_id=user_id,
                user_name=user_name,
                user_role=user_role,
                ip_address=f"10.20.0.{10 + index}",
                result=result,
                log_level=level,
                description=description,
                session_id=session,
                duration_ms=duration,
            )
        )
    return records


def build_retention_policies(now: datetime | None = None) -> list[RetentionPolicy]:
    now = now or utc_now()
    return [
        RetentionPolicy("RET-001", "AUTHENTICATION", "YEAR_1", 365, auto_archive=True, auto_delete=True,
                        created_at=now, updated_at=now),
        RetentionPolicy("RET-002", "DATA_MODIFICATION", "YEARS_7", 2555, auto_archive=True,
                        created_at=now, updated_at=now),
    ]
