"""Built-in workflow templates shipped with the engine."""

from __future__ import annotations

from ..contracts import (
    ConditionType,
    StepCondition,
    TriggerEvent,
    WorkflowStep,
    WorkflowTemplate,
)

_AUTO = "Auto-created by the workflow engine."

NEW_CLIENT_ONBOARDING = WorkflowTemplate(
    id="new-client-onboarding",
    name="New Client Onboarding",
    description=(
        "Creates tasks for the full onboarding sequence: paperwork, DocuSign, "
        "compliance review, initial meeting and the 90-day check-in."
    ),
    trigger=TriggerEvent.HOUSEHOLD_CREATED,
    steps=[
        WorkflowStep(
            id="nco-1-welcome",
            label="Send Welcome Package",
            task_subject="WORKFLOW — Send welcome package",
            task_description=(
                "New client onboarding: send welcome email with firm overview, "
                f"fee disclosure and privacy policy. {_AUTO}"
            ),
            task_priority="High",
            delay_days=0,
        ),
        WorkflowStep(
            id="nco-2-docusign",
            label="Prepare DocuSign Envelopes",
            task_subject="WORKFLOW — Prepare DocuSign envelopes",
            task_description=(
                "Generate and send all required account opening documents via "
                f"DocuSign. {_AUTO}"
            ),
            task_priority="High",
            delay_days=1,
        ),
        WorkflowStep(
            id="nco-3-compliance",
            label="Run Compliance Review",
            task_subject="WORKFLOW — Run compliance review",
            task_description=(
                "Complete the initial compliance review for the new household. "
                f"Verify KYC, suitability and documentation completeness. {_AUTO}"
            ),
            task_priority="High",
            delay_days=3,
        ),
        WorkflowStep(
            id="nco-4-meeting",
            label="Schedule Initial Meeting",
            task_subject="WORKFLOW — Schedule initial client meeting",
            task_description=(
                "Book and conduct the initial strategy meeting. Review investment "
                f"objectives, risk tolerance and planning needs. {_AUTO}"
            ),
            delay_days=7,
        ),
        WorkflowStep(
            id="nco-5-funding-check",
            label="Verify Funding Complete",
            task_subject="WORKFLOW — Verify account funding",
            task_description=(
                "Confirm all accounts are funded as planned. Follow up on pending "
                f"transfers or MoneyLink setups. {_AUTO}"
            ),
            delay_days=14,
        ),
        WorkflowStep(
            id="nco-6-90day",
            label="90-Day Check-In",
            task_subject="WORKFLOW — 90-day new client check-in",
            task_description=(
                "Review portfolio performance, validate allocation, confirm client "
                f"satisfaction and update the financial plan if needed. {_AUTO}"
            ),
            delay_days=90,
        ),
    ],
)

DOCUMENT_EXPIRATION = WorkflowTemplate(
    id="document-expiration",
    name="Document Expiration Tracking",
    description=(
        "Monitors client ID documents for expiration. Creates warning tasks at "
        "60, 30 and 7 days before expiration, with escalation."
    ),
    trigger=TriggerEvent.SCHEDULED,
    reevaluate=True,
    steps=[
        WorkflowStep(
            id="dex-1-60day",
            label="60-Day Warning",
            task_subject="WORKFLOW — Document expiring in 60 days",
            task_description=(
                "Client identification document expires within 60 days. Request "
                f"updated documentation from the client. {_AUTO}"
            ),
            delay_days=0,
            # one-year document validity minus the 60-day warning window
            condition=StepCondition(
                type=ConditionType.DAYS_SINCE_CREATED, min_days=305
            ),
        ),
        WorkflowStep(
            id="dex-2-30day",
            label="30-Day Urgent Notice",
            task_subject="WORKFLOW — Document expiring in 30 days — ACTION REQUIRED",
            task_description=(
                "URGENT: client identification document expires in 30 days. The "
                f"account may be restricted if it is not renewed. {_AUTO}"
            ),
            task_priority="High",
            delay_days=30,
        ),
        WorkflowStep(
            id="dex-3-7day",
            label="7-Day Escalation",
            task_subject="WORKFLOW — Document expires in 7 days — ESCALATE",
            task_description=(
                "ESCALATION: client document expires in 7 days. Notify the "
                f"compliance officer and relationship manager. {_AUTO}"
            ),
            task_priority="High",
            delay_days=23,
        ),
    ],
)

BUILTIN_TEMPLATES = (NEW_CLIENT_ONBOARDING, DOCUMENT_EXPIRATION)
