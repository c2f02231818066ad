"""Service layer: the ApprovalEngine facade."""

from approval_services.approval_engine import ApprovalEngine, UnitOfWork

__all__ = ["ApprovalEngine", "UnitOfWork"]
