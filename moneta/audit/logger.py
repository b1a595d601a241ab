"""
Audit Logger

DESIGN DECISION: Every scheduler batch, archival step and rule change is
logged. The scheduler and archiver fail soft (the user only sees "nothing
happened"), so this logger is where failures become visible:
1. Complete traceability
2. Debugging capability
3. History of what the scheduler generated and when

The audit logger:
- Is async so it composes with the async storage calls
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from moneta.models.audit import AuditEvent, AuditEventBuilder
from moneta.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("moneta.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                stored = await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False
            if not stored:
                self._logger.error(
                    "audit_storage_failed",
                    error="storage rejected event",
                    event_id=str(event.event_id),
                )
            return stored

        return True

    async def log_scheduler_run(
        self,
        business_id: Optional[str],
        generated_count: int,
        rules_processed: int,
        skipped_duplicates: int,
        correlation_id: UUID,
    ) -> None:
        """Log a completed scheduler batch."""
        await self.log(AuditEventBuilder.scheduler_run_completed(
            business_id=business_id,
            generated_count=generated_count,
            rules_processed=rules_processed,
            skipped_duplicates=skipped_duplicates,
            correlation_id=correlation_id,
        ))

    async def log_scheduler_failure(
        self,
        business_id: Optional[str],
        stage: str,
        error_message: str,
        lost_transactions: int,
        correlation_id: UUID,
    ) -> None:
        """Log a scheduler batch that failed soft."""
        await self.log(AuditEventBuilder.scheduler_run_failed(
            business_id=business_id,
            stage=stage,
            error_message=error_message,
            lost_transactions=lost_transactions,
            correlation_id=correlation_id,
        ))

    async def log_rule_deactivated(
        self,
        business_id: Optional[str],
        rule_id: str,
        end_date: Optional[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.rule_deactivated(
            business_id=business_id,
            rule_id=rule_id,
            end_date=end_date,
            correlation_id=correlation_id,
        ))

    async def log_rule_save_failed(
        self,
        business_id: Optional[str],
        rule_id: str,
        error_message: str,
        dropped_transactions: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.rule_save_failed(
            business_id=business_id,
            rule_id=rule_id,
            error_message=error_message,
            dropped_transactions=dropped_transactions,
            correlation_id=correlation_id,
        ))

    async def log_rule_skipped(
        self,
        business_id: Optional[str],
        rule_id: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.rule_skipped(
            business_id=business_id,
            rule_id=rule_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_rule_saved(
        self,
        business_id: Optional[str],
        rule_id: str,
        created: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.rule_saved(
            business_id=business_id,
            rule_id=rule_id,
            created=created,
            correlation_id=correlation_id,
        ))

    async def log_rule_deleted(
        self,
        business_id: Optional[str],
        rule_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.rule_deleted(
            business_id=business_id,
            rule_id=rule_id,
            correlation_id=correlation_id,
        ))

    async def log_rule_rejected(
        self,
        business_id: Optional[str],
        rule_id: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.rule_rejected(
            business_id=business_id,
            rule_id=rule_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_month_archived(
        self,
        business_id: Optional[str],
        statement_id: str,
        transaction_count: int,
        net_amount: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.month_archived(
            business_id=business_id,
            statement_id=statement_id,
            transaction_count=transaction_count,
            net_amount=net_amount,
            correlation_id=correlation_id,
        ))

    async def log_month_unarchived(
        self,
        business_id: Optional[str],
        statement_id: str,
        transaction_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.month_unarchived(
            business_id=business_id,
            statement_id=statement_id,
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        ))

    async def log_unarchive_refused(
        self,
        business_id: Optional[str],
        statement_id: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.unarchive_refused(
            business_id=business_id,
            statement_id=statement_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_archive_sweep(
        self,
        business_id: Optional[str],
        archived_ids: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.archive_sweep_completed(
            business_id=business_id,
            archived_ids=archived_ids,
            correlation_id=correlation_id,
        ))

    async def log_archive_failure(
        self,
        business_id: Optional[str],
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.archive_failed(
            business_id=business_id,
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_business_switched(
        self,
        previous_id: Optional[str],
        business_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.business_switched(
            previous_id=previous_id,
            business_id=business_id,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a scheduler run or user action.
    Pass it through all subsequent operations.
    """
    return uuid4()
