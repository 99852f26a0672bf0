"""Coordinators enforcing dispatch and alert/message lifecycle rules.

The command facade lives in ``coordination.center`` and is imported from
there directly; it depends on the simulation package, which in turn uses
the drafts defined here.
"""

from .alerts import AlertDraft, AlertLifecycle, MessageDraft
from .dispatch import DispatchCoordinator

__all__ = ["AlertDraft", "AlertLifecycle", "DispatchCoordinator", "MessageDraft"]
