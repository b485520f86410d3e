"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Traceability of every posting back to the user action that caused it
2. Debugging capability
3. A history the owner can inspect

The audit logger:
- Is async so it fits the storage layer
- Gracefully handles failures (a broken audit sheet never fails a posting)
- Supports correlation IDs to trace related events
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from ledger.models.validation import ValidationIssue
from ledger.periods import Period
from ledger.services.storage import AuditStorageInterface


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


def configure_logging(log_level: str = "INFO") -> None:
    """Route structlog's JSON lines through stdlib logging at log_level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, if configured (for persistence)
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
        self._logger = structlog.get_logger("ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity is AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity is AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def log_account_created(
        self,
        owner_id: str,
        account_id: UUID,
        name: str,
        account_type: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.account_created(
            owner_id=owner_id,
            account_id=account_id,
            name=name,
            account_type=account_type,
            correlation_id=correlation_id,
        ))

    async def log_account_updated(
        self,
        owner_id: str,
        account_id: UUID,
        changes: dict,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.account_updated(
            owner_id=owner_id,
            account_id=account_id,
            changes=changes,
            correlation_id=correlation_id,
        ))

    async def log_account_removed(
        self,
        owner_id: str,
        account_id: UUID,
        hard: bool,
        correlation_id: UUID,
    ) -> None:
        """Log a hard delete or a soft delete (deactivation)."""
        await self.log(AuditEventBuilder.account_removed(
            owner_id=owner_id,
            account_id=account_id,
            hard=hard,
            correlation_id=correlation_id,
        ))

    async def log_accounts_reordered(
        self,
        owner_id: str,
        ordered_ids: list[UUID],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.accounts_reordered(
            owner_id=owner_id,
            ordered_ids=ordered_ids,
            correlation_id=correlation_id,
        ))

    async def log_accounts_seeded(
        self,
        owner_id: str,
        created: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.accounts_seeded(
            owner_id=owner_id,
            created=created,
            correlation_id=correlation_id,
        ))

    # =========================================================================
    # LEDGER
    # =========================================================================

    async def log_entry_created(
        self,
        owner_id: str,
        entry_id: UUID,
        account_id: UUID,
        amount: Decimal,
        period: Period,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.entry_created(
            owner_id=owner_id,
            entry_id=entry_id,
            account_id=account_id,
            amount=amount,
            period=str(period),
            correlation_id=correlation_id,
        ))

    async def log_entry_updated(
        self,
        owner_id: str,
        entry_id: UUID,
        changes: dict,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.entry_updated(
            owner_id=owner_id,
            entry_id=entry_id,
            changes=changes,
            correlation_id=correlation_id,
        ))

    async def log_entry_deleted(
        self,
        owner_id: str,
        entry_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.entry_deleted(
            owner_id=owner_id,
            entry_id=entry_id,
            correlation_id=correlation_id,
        ))

    async def log_installment_plan_created(
        self,
        owner_id: str,
        group_id: UUID,
        installments: int,
        amount: Decimal,
        first_period: Period,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.installment_plan_created(
            owner_id=owner_id,
            group_id=group_id,
            installments=installments,
            amount=amount,
            first_period=str(first_period),
            correlation_id=correlation_id,
        ))

    async def log_installment_group_deleted(
        self,
        owner_id: str,
        group_id: UUID,
        deleted: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.installment_group_deleted(
            owner_id=owner_id,
            group_id=group_id,
            deleted=deleted,
            correlation_id=correlation_id,
        ))

    async def log_carry_over_posted(
        self,
        owner_id: str,
        entry_id: UUID,
        from_period: Period,
        to_period: Period,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.carry_over_posted(
            owner_id=owner_id,
            entry_id=entry_id,
            from_period=str(from_period),
            to_period=str(to_period),
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_partial_payment_posted(
        self,
        owner_id: str,
        entry_id: UUID,
        paid_amount: Decimal,
        remaining_amount: Decimal,
        interest_amount: Decimal,
        next_period: Period,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.partial_payment_posted(
            owner_id=owner_id,
            entry_id=entry_id,
            paid_amount=paid_amount,
            remaining_amount=remaining_amount,
            interest_amount=interest_amount,
            next_period=str(next_period),
            correlation_id=correlation_id,
        ))

    # =========================================================================
    # VALIDATION
    # =========================================================================

    async def log_validation_warnings(
        self,
        operation: str,
        issues: list[ValidationIssue],
        owner_id: Optional[str],
        entity_type: Optional[str],
        entity_id: Optional[UUID],
        correlation_id: UUID,
    ) -> None:
        """Log warnings a request passed validation with (absurd amount, drift)."""
        if not issues:
            return
        await self.log(AuditEventBuilder.validation_warnings(
            operation=operation,
            issues=[
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in issues
            ],
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        ))

    # =========================================================================
    # FAILURES
    # =========================================================================

    async def log_rejected(
        self,
        operation: str,
        error_code: str,
        error_message: str,
        owner_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        """Log a request the ledger refused (not found, forbidden, conflict...)."""
        await self.log(AuditEventBuilder.operation_rejected(
            operation=operation,
            error_code=error_code,
            error_message=error_message,
            owner_id=owner_id,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        owner_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            owner_id=owner_id,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., an installment purchase).
    Pass it through all subsequent operations.
    """
    return uuid4()
