from __future__ import annotations

from .errors import AccessDeniedError
from .logging import get_logger

LOG = get_logger("access")


class AccessGate:
    """Static 4-digit code in front of the configuration endpoints.

    A plain string comparison kept out of the way of casual edits; it is not
    an authentication mechanism.
    """

    def __init__(self, pin: str) -> None:
        if not (len(pin) == 4 and pin.isdigit()):
            raise ValueError("access code must be exactly 4 digits")
        self._pin = pin

    def check(self, code: str | None) -> bool:
        return (code or "").strip() == self._pin

    def require(self, code: str | None) -> None:
        if not self.check(code):
            LOG.warning("Rejected configuration access with an incorrect code")
            raise AccessDeniedError("Código incorrecto")
