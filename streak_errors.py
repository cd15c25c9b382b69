class StreakError(Exception):
    """Base class for streak service errors."""


class NoStreakDataError(StreakError):
    def __init__(self, wallet: str = ""):
        super().__init__("No streak data found")
        self.wallet = wallet


class BackupDecodeError(StreakError):
    """Backup code is not decodable or does not hold a usable record."""

    def __init__(self, reason: str = "Invalid backup format"):
        super().__init__(reason)
        self.reason = reason
