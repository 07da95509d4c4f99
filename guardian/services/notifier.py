"""Delivery of one-time codes to account holders."""

from __future__ import annotations

from typing import Literal, Protocol

CodePurpose = Literal["verification", "password_reset"]


class Notifier(Protocol):
    """A delivery channel for verification and reset codes."""

    def configured(self) -> bool: ...

    async def send_code(self, recipient: str, code: str, purpose: CodePurpose) -> bool:
        """Deliver `code` to `recipient`. Returns False if nothing was sent."""
        ...


def code_message(code: str, purpose: CodePurpose, ttl_minutes: int) -> str:
    """Plain-text body shared by every channel."""
    if purpose == "password_reset":
        return f"Your Guardian password reset code is {code}. It expires in {ttl_minutes} minutes."
    return f"Your Guardian verification code is {code}. It expires in {ttl_minutes} minutes."
