MAX_MESSAGE_BYTES = 1000
# unlock times are stored in a signed 64-bit column
MAX_UNLOCK_TIME = 2 ** 63 - 1


class CapsuleError(Exception):
    """Base class for rejected capsule operations."""
    code = "CapsuleError"


class InvalidUnlockTime(CapsuleError):
    code = "InvalidUnlockTime"

    def __init__(self, unlock_time: int, now: int):
        if unlock_time > MAX_UNLOCK_TIME:
            reason = f"Unlock time {unlock_time} is beyond the largest supported time {MAX_UNLOCK_TIME}"
        else:
            reason = f"Unlock time {unlock_time} must be after current time {now}"
        super().__init__(reason)
        self.unlock_time = unlock_time
        self.now = now


class EmptyMessage(CapsuleError):
    code = "EmptyMessage"

    def __init__(self):
        super().__init__("Message cannot be empty")


class MessageTooLong(CapsuleError):
    code = "MessageTooLong"

    def __init__(self, size: int):
        super().__init__(f"Message is {size} bytes, limit is {MAX_MESSAGE_BYTES}")
        self.size = size


class CapsuleNotFound(CapsuleError):
    code = "CapsuleNotFound"

    def __init__(self, capsule_id: int):
        super().__init__(f"Capsule {capsule_id} not found")
        self.capsule_id = capsule_id


class NotOwner(CapsuleError):
    code = "NotOwner"

    def __init__(self, capsule_id: int, identity):
        super().__init__(f"{identity} is not the owner of capsule {capsule_id}")
        self.capsule_id = capsule_id
        self.identity = identity


class StillLocked(CapsuleError):
    code = "StillLocked"

    def __init__(self, capsule_id: int, unlock_time: int):
        super().__init__(f"Capsule {capsule_id} is locked until {unlock_time}")
        self.capsule_id = capsule_id
        self.unlock_time = unlock_time


class AlreadyRevealed(CapsuleError):
    code = "AlreadyRevealed"

    def __init__(self, capsule_id: int):
        super().__init__(f"Capsule {capsule_id} has already been revealed")
        self.capsule_id = capsule_id
