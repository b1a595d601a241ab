"""
Audit Models for Moneta

Every scheduler run, archival step and rule change is logged for audit
purposes. The scheduler fails soft by design, so the audit trail is
the only place a storage failure becomes visible.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Scheduler
    SCHEDULER_RUN_COMPLETED = "scheduler_run_completed"
    SCHEDULER_RUN_FAILED = "scheduler_run_failed"
    RULE_DEACTIVATED = "rule_deactivated"
    RULE_SAVE_FAILED = "rule_save_failed"
    RULE_SKIPPED = "rule_skipped"

    # Recurring rule management
    RULE_SAVED = "rule_saved"
    RULE_DELETED = "rule_deleted"
    RULE_REJECTED = "rule_rejected"

    # Statements
    MONTH_ARCHIVED = "month_archived"
    MONTH_UNARCHIVED = "month_unarchived"
    UNARCHIVE_REFUSED = "unarchive_refused"
    ARCHIVE_SWEEP_COMPLETED = "archive_sweep_completed"
    ARCHIVE_FAILED = "archive_failed"

    # Business context
    BUSINESS_SWITCHED = "business_switched"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    business_id: Optional[str] = Field(
        default=None,
        description="Business context the event happened in"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'recurring_rule', 'statement')"
    )
    entity_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one scheduler run)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "business_id": self.business_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.month_archived(business_id, statement_id, ...)
        event = AuditEventBuilder.scheduler_run_failed(business_id, error, ...)
    """

    @staticmethod
    def scheduler_run_completed(
        business_id: Optional[str],
        generated_count: int,
        rules_processed: int,
        skipped_duplicates: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULER_RUN_COMPLETED,
            business_id=business_id,
            entity_type="business",
            entity_id=business_id,
            correlation_id=correlation_id,
            description=f"Scheduler generated {generated_count} transactions from {rules_processed} rules",
            details={
                "generated_count": generated_count,
                "rules_processed": rules_processed,
                "skipped_duplicates": skipped_duplicates,
            },
        )

    @staticmethod
    def scheduler_run_failed(
        business_id: Optional[str],
        stage: str,
        error_message: str,
        lost_transactions: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULER_RUN_FAILED,
            severity=AuditSeverity.ERROR,
            business_id=business_id,
            entity_type="business",
            entity_id=business_id,
            correlation_id=correlation_id,
            description=f"Scheduler batch failed while {stage}",
            error_message=error_message,
            details={
                "stage": stage,
                "lost_transactions": lost_transactions,
            },
        )

    @staticmethod
    def rule_deactivated(
        business_id: Optional[str],
        rule_id: str,
        end_date: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_DEACTIVATED,
            business_id=business_id,
            entity_type="recurring_rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Recurring rule {rule_id} reached its end date",
            details={"end_date": end_date},
        )

    @staticmethod
    def rule_save_failed(
        business_id: Optional[str],
        rule_id: str,
        error_message: str,
        dropped_transactions: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            business_id=business_id,
            entity_type="recurring_rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Failed to save recurring rule {rule_id}",
            error_message=error_message,
            details={"dropped_transactions": dropped_transactions},
        )

    @staticmethod
    def rule_skipped(
        business_id: Optional[str],
        rule_id: str,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_SKIPPED,
            severity=AuditSeverity.WARNING,
            business_id=business_id,
            entity_type="recurring_rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Recurring rule {rule_id} skipped: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def rule_saved(
        business_id: Optional[str],
        rule_id: str,
        created: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_SAVED,
            business_id=business_id,
            entity_type="recurring_rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Recurring rule {'created' if created else 'updated'}: {rule_id}",
            details={"created": created},
            is_user_action=True,
        )

    @staticmethod
    def rule_deleted(
        business_id: Optional[str],
        rule_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_DELETED,
            business_id=business_id,
            entity_type="recurring_rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Recurring rule deleted: {rule_id}",
            is_user_action=True,
        )

    @staticmethod
    def rule_rejected(
        business_id: Optional[str],
        rule_id: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_REJECTED,
            severity=AuditSeverity.WARNING,
            business_id=business_id,
            entity_type="recurring_rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Recurring rule rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def month_archived(
        business_id: Optional[str],
        statement_id: str,
        transaction_count: int,
        net_amount: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MONTH_ARCHIVED,
            business_id=business_id,
            entity_type="statement",
            entity_id=statement_id,
            correlation_id=correlation_id,
            description=f"Archived {statement_id} with {transaction_count} transactions",
            details={
                "transaction_count": transaction_count,
                "net_amount": net_amount,
            },
        )

    @staticmethod
    def month_unarchived(
        business_id: Optional[str],
        statement_id: str,
        transaction_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MONTH_UNARCHIVED,
            business_id=business_id,
            entity_type="statement",
            entity_id=statement_id,
            correlation_id=correlation_id,
            description=f"Restored {transaction_count} transactions from {statement_id}",
            details={"transaction_count": transaction_count},
            is_user_action=True,
        )

    @staticmethod
    def unarchive_refused(
        business_id: Optional[str],
        statement_id: str,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.UNARCHIVE_REFUSED,
            severity=AuditSeverity.WARNING,
            business_id=business_id,
            entity_type="statement",
            entity_id=statement_id,
            correlation_id=correlation_id,
            description=f"Unarchive of {statement_id} refused: {reason}",
            details={"reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def archive_sweep_completed(
        business_id: Optional[str],
        archived_ids: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ARCHIVE_SWEEP_COMPLETED,
            business_id=business_id,
            entity_type="business",
            entity_id=business_id,
            correlation_id=correlation_id,
            description=f"Auto-archive sweep archived {len(archived_ids)} months",
            details={"archived": archived_ids},
        )

    @staticmethod
    def archive_failed(
        business_id: Optional[str],
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ARCHIVE_FAILED,
            severity=AuditSeverity.ERROR,
            business_id=business_id,
            entity_type="business",
            entity_id=business_id,
            correlation_id=correlation_id,
            description=f"Statement {operation} failed",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def business_switched(
        previous_id: Optional[str],
        business_id: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUSINESS_SWITCHED,
            business_id=business_id,
            entity_type="business",
            entity_id=business_id,
            correlation_id=correlation_id,
            description=f"Business context switched to {business_id or 'none'}",
            details={"previous_business_id": previous_id},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
