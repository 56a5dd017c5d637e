SUBMIT_FAILED = "submit-failed"
INSPECT_FAILED = "inspect-failed"
NO_FILES = "no-files"
SELECT_FAILED = "select-failed"
NO_LINKS = "no-links"

PLAYBACK_ERROR_KINDS = (SUBMIT_FAILED, INSPECT_FAILED, NO_FILES, SELECT_FAILED, NO_LINKS)


class BrazucaError(Exception):
    pass


class DiscoveryError(BrazucaError):
    """Search or metadata lookup failed. Always recovered by discovery."""


class AvailabilityError(BrazucaError):
    """Instant availability query failed. Recovered as "unavailable"."""


class PlaybackError(BrazucaError):
    """
    Resolution of a magnet into a direct URL failed.

    Not recovered locally: the caller of resolution is expected to turn it
    into a visible error response.
    """

    def __init__(self, kind: str, message: str = ""):
        if kind not in PLAYBACK_ERROR_KINDS:
            raise ValueError(f"Unknown playback error kind: {kind}")
        self.kind = kind
        self.message = message
        super().__init__(f"{kind}: {message}" if message else kind)
