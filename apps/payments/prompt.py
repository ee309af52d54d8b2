"""Confirmation prompt shown when the user returns from the UPI app."""

from .session import PaymentOutcome, SessionState

_VISIBLE_STATES = frozenset({
    SessionState.AWAITING_USER_CONFIRMATION,
    SessionState.RESOLVING,
})


class ConfirmationPrompt:
    """
    "Did the payment succeed?" with Yes/No buttons.

    Holds no state of its own; everything is read from the controller's
    session.
    """

    title = 'Did the payment succeed?'

    def __init__(self, controller):
        self.controller = controller

    @property
    def visible(self) -> bool:
        return self.controller.session.state in _VISIBLE_STATES

    @property
    def buttons_disabled(self) -> bool:
        return self.controller.session.state is SessionState.RESOLVING

    @property
    def error(self):
        return self.controller.session.error

    async def yes(self) -> SessionState:
        return await self.controller.confirm(PaymentOutcome.CONFIRMED)

    async def no(self) -> SessionState:
        return await self.controller.confirm(PaymentOutcome.CANCELLED)

    def close(self) -> bool:
        return self.controller.dismiss()
