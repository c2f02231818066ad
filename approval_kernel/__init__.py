"""
Approval Kernel

The state-machine core of the document approval workflow engine:
- Linear, ordered approval steps per entity type
- Per-step authorization by user, role, or requestor's manager
- Append-only action audit trail
- Compare-and-set transitions safe under concurrent callers
- Best-effort document status projection and notifications
"""

__version__ = "0.1.0"
