from __future__ import annotations

from replprobe.approval.control_group import ControlGroupClient, unwrap_with_retries

__all__ = ["ControlGroupClient", "unwrap_with_retries"]
