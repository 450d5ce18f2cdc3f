"""
Audit Logging Service
Provides the audit trail for reversals, refunds, amendments and drift corrections
"""
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import Optional, List, Dict
import json
import logging

from erp_ledger.models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """Constants for audit actions"""
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_MADE = "PAYMENT_MADE"
    ADVANCE_REFUNDED = "ADVANCE_REFUNDED"
    ADVANCE_ADJUSTED = "ADVANCE_ADJUSTED"
    TRANSFER_COMPLETED = "TRANSFER_COMPLETED"
    TRANSFER_REVERSED = "TRANSFER_REVERSED"
    PAYMENT_REVERSED = "PAYMENT_REVERSED"
    PAYMENT_AMENDED = "PAYMENT_AMENDED"
    ENTITY_TRANSACTION = "ENTITY_TRANSACTION"
    DOCUMENT_CONFIRMED = "DOCUMENT_CONFIRMED"
    DOCUMENT_CANCELLED = "DOCUMENT_CANCELLED"
    DRIFT_CORRECTED = "DRIFT_CORRECTED"


class AuditService:
    """Service for recording and retrieving audit logs"""

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        action: str,
        resource_type: str,
        resource_id: Optional[int] = None,
        description: Optional[str] = None,
        old_values: Optional[Dict] = None,
        new_values: Optional[Dict] = None,
        username: Optional[str] = None,
        ip_address: Optional[str] = None,
        status: str = "success"
    ) -> AuditLog:
        """
        Create an audit log entry inside the caller's unit of work.

        Args:
            action: The action being performed (use AuditAction constants)
            resource_type: Type of resource being affected (e.g., 'Payment', 'Party')
            resource_id: ID of the affected resource
            description: Human-readable description of the action
            old_values: Dictionary of values before the change
            new_values: Dictionary of values after the change
            username: Who performed the action, when known
            ip_address: Client IP address
            status: 'success', 'failure', or 'error'

        Returns:
            The created AuditLog instance
        """
        old_values_json = json.dumps(old_values, default=str) if old_values else None
        new_values_json = json.dumps(new_values, default=str) if new_values else None

        audit_log = AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            description=description,
            old_values=old_values_json,
            new_values=new_values_json,
            username=username,
            ip_address=ip_address,
            status=status
        )

        self.db.add(audit_log)
        self.db.flush()  # Flush to get the ID without committing

        logger.info(f"Audit: {action} {resource_type}(id={resource_id}) status={status}")

        return audit_log

    def get_by_resource(
        self,
        resource_type: str,
        resource_id: int,
        limit: int = 50
    ) -> List[AuditLog]:
        """Get audit history for a specific resource"""
        return self.db.query(AuditLog).filter(
            AuditLog.resource_type == resource_type,
            AuditLog.resource_id == resource_id
        ).order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit).all()
