from timecapsule.context import CallContext, ManualClock, SystemClock
from timecapsule.registry import CapsuleInfo, CapsuleRegistry, CapsuleStats

__version__ = "1.0.0"

__all__ = [
    "CallContext",
    "CapsuleInfo",
    "CapsuleRegistry",
    "CapsuleStats",
    "ManualClock",
    "SystemClock",
]
