"""
Payment Session Module
======================

Client-side state machine for one UPI payment handoff::

    IDLE -> AWAITING_SERVER_ACK -> AWAITING_RETURN
         -> AWAITING_USER_CONFIRMATION -> RESOLVING -> IDLE

The pending expense is created on the server and its id stored before the
caller is allowed to redirect to the UPI app. Once the app is left there is
no completion callback, so the outcome comes from the user: when the page is
foregrounded again the controller asks, and resolves the record with the
answer.

All mutable state lives in one ``PaymentSession`` object that the
controller, the return detector and the confirmation prompt share by
reference. Handlers registered once always read the current value.

Example:
    Wiring the pieces together::

        from apps.payments.transport import ExpenseApiClient
        from apps.payments.session import FileSessionStorage, PaymentSessionController

        store = ExpenseApiClient('https://api.example.com', token)
        controller = PaymentSessionController(
            store,
            storage=FileSessionStorage('~/.upi-session.json'),
            on_success=refresh_ledger,
        )
        controller.restore()
        expense_id = await controller.pay(form, redirect=open_link)
"""

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Union

from .exceptions import (
    PaymentNetworkError,
    PaymentsError,
    PendingExpenseNotFoundError,
    SessionStateError,
    UpiValidationError,
)
from .upi import PaymentForm

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = 'IDLE'
    AWAITING_SERVER_ACK = 'AWAITING_SERVER_ACK'
    AWAITING_RETURN = 'AWAITING_RETURN'
    AWAITING_USER_CONFIRMATION = 'AWAITING_USER_CONFIRMATION'
    RESOLVING = 'RESOLVING'


class PaymentOutcome(str, Enum):
    CONFIRMED = 'CONFIRMED'
    CANCELLED = 'CANCELLED'


ALLOWED_TRANSITIONS = {
    # IDLE -> AWAITING_RETURN only when restoring a stored id after a reload
    SessionState.IDLE: {SessionState.AWAITING_SERVER_ACK, SessionState.AWAITING_RETURN},
    SessionState.AWAITING_SERVER_ACK: {SessionState.AWAITING_RETURN, SessionState.IDLE},
    SessionState.AWAITING_RETURN: {SessionState.AWAITING_USER_CONFIRMATION},
    SessionState.AWAITING_USER_CONFIRMATION: {SessionState.RESOLVING, SessionState.IDLE},
    SessionState.RESOLVING: {SessionState.IDLE, SessionState.AWAITING_USER_CONFIRMATION},
}


def assert_transition(current: SessionState, target: SessionState) -> None:
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise SessionStateError(
            f"Invalid session transition: {current.value} -> {target.value}"
        )


@dataclass
class PaymentSession:
    """The single mutable cell holding session state."""

    state: SessionState = SessionState.IDLE
    pending_expense_id: Optional[str] = None
    confirming: bool = False
    awaiting_confirmation: bool = False
    error: Optional[str] = None


class PendingExpenseStore(Protocol):
    """Server side of the handoff; ``ExpenseApiClient`` implements it."""

    async def initiate(self, payload: dict) -> str: ...

    async def confirm(self, expense_id: str, status: str) -> dict: ...


# =============================================================================
# Session storage
# =============================================================================

class MemorySessionStorage:
    """Keeps the pending id for the lifetime of the process."""

    def __init__(self):
        self._expense_id = None

    def load(self) -> Optional[str]:
        return self._expense_id

    def save(self, expense_id: str) -> None:
        self._expense_id = expense_id

    def clear(self) -> None:
        self._expense_id = None


class FileSessionStorage:
    """
    Keeps the pending id in a small JSON file so it survives a restart.

    Storage is best-effort: the in-memory session stays authoritative, so a
    failed write is logged and the flow continues.
    """

    KEY = 'pendingExpenseId'

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def load(self) -> Optional[str]:
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, exc)
            return None

        value = data.get(self.KEY) if isinstance(data, dict) else None
        return str(value) if value else None

    def save(self, expense_id: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps({self.KEY: expense_id}), encoding='utf-8')
        except OSError as exc:
            logger.warning("Could not write session file %s: %s", self.path, exc)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove session file %s: %s", self.path, exc)


# =============================================================================
# Controller
# =============================================================================

Observer = Callable[[PaymentSession], Any]
SuccessCallback = Callable[[dict], Optional[Awaitable[Any]]]


class PaymentSessionController:
    """
    Drives one payment at a time through the session state machine.

    Errors from the two network calls never escape ``confirm`` or
    ``dismiss``: they are turned into ``session.error`` plus a transition.
    ``initiate`` and ``pay`` also record the error, then re-raise it so the
    caller knows not to redirect.
    """

    def __init__(
        self,
        store: PendingExpenseStore,
        *,
        storage=None,
        on_success: Optional[SuccessCallback] = None,
        session: Optional[PaymentSession] = None
    ):
        self.store = store
        self.storage = storage or MemorySessionStorage()
        self.on_success = on_success
        self.session = session or PaymentSession()
        self._observers: List[Observer] = []
        self._resolving: Optional[asyncio.Future] = None

    @property
    def state(self) -> SessionState:
        return self.session.state

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Call ``observer(session)`` after every state change.

        Returns:
            A function that removes the observer.
        """
        self._observers.append(observer)

        def unsubscribe():
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _transition(self, target: SessionState) -> None:
        current = self.session.state
        assert_transition(current, target)
        self.session.state = target
        logger.debug("Payment session %s -> %s", current.value, target.value)

        for observer in list(self._observers):
            try:
                observer(self.session)
            except Exception:
                logger.exception("Session observer %r failed", observer)

    def _clear_pending(self) -> None:
        self.session.pending_expense_id = None
        self.session.awaiting_confirmation = False
        self.session.confirming = False
        self.storage.clear()

    # -------------------------------------------------------------------------
    # Initiate
    # -------------------------------------------------------------------------

    def restore(self) -> Optional[str]:
        """
        Rehydrate a stored pending id after a reload.

        The session resumes in AWAITING_RETURN, so the next return signal
        brings up the confirmation prompt.
        """
        if self.session.state is not SessionState.IDLE:
            return self.session.pending_expense_id

        expense_id = self.storage.load()
        if expense_id:
            self.session.pending_expense_id = expense_id
            self.session.awaiting_confirmation = False
            self._transition(SessionState.AWAITING_RETURN)
            logger.info("Restored pending expense %s", expense_id)
        return expense_id

    async def initiate(self, payload: dict) -> str:
        """
        Create the pending expense and wait for the server's id.

        Returns only after the id is stored; callers must not redirect
        before that.

        Raises:
            SessionStateError: If a payment is already in progress
            PaymentsError: If the create call failed (state is back to IDLE)
        """
        if self.session.state is not SessionState.IDLE:
            raise SessionStateError()

        self.session.error = None
        self._transition(SessionState.AWAITING_SERVER_ACK)

        try:
            expense_id = await self.store.initiate(payload)
        except asyncio.CancelledError:
            # Caller gave up waiting; no id was stored
            logger.info("Initiating payment cancelled before server ack")
            self._transition(SessionState.IDLE)
            raise
        except PaymentsError as exc:
            self._fail_initiate(exc)
            raise
        except Exception as exc:
            logger.exception("Initiating payment failed")
            error = PaymentNetworkError()
            self._fail_initiate(error)
            raise error from exc

        self.session.pending_expense_id = expense_id
        self.session.awaiting_confirmation = False
        self.storage.save(expense_id)
        self._transition(SessionState.AWAITING_RETURN)
        logger.info("Pending expense %s acknowledged", expense_id)
        return expense_id

    def _fail_initiate(self, exc: PaymentsError) -> None:
        self.session.error = exc.message
        self._transition(SessionState.IDLE)

    async def pay(self, form: PaymentForm, redirect: Callable[[str], Any]) -> str:
        """
        Validate the form, initiate, then hand the deep link to ``redirect``.

        ``redirect`` is called only after the server acknowledged the
        pending expense. It may be sync or async.

        Raises:
            UpiValidationError: If the form is invalid (no state change)
            PaymentsError: If initiate failed (no redirect happened)
        """
        try:
            request = form.validate()
        except UpiValidationError as exc:
            self.session.error = exc.message
            raise

        expense_id = await self.initiate(request.payload)

        result = redirect(request.link)
        if inspect.isawaitable(result):
            await result
        return expense_id

    # -------------------------------------------------------------------------
    # Return and resolution
    # -------------------------------------------------------------------------

    def on_possible_return(self) -> bool:
        """
        Handle a focus or visibility signal.

        Only acts in AWAITING_RETURN with a pending id. Repeated signals are
        no-ops.

        Returns:
            True if this call brought up the confirmation prompt.
        """
        session = self.session
        if session.state is not SessionState.AWAITING_RETURN or not session.pending_expense_id:
            return False

        session.awaiting_confirmation = True
        self._transition(SessionState.AWAITING_USER_CONFIRMATION)
        return True

    async def confirm(self, outcome: Union[PaymentOutcome, str]) -> SessionState:
        """
        Resolve the pending expense with the user's answer.

        A call made while a resolve is already in flight sends nothing and
        waits for the in-flight result.

        Returns:
            The session state once the resolve has finished.
        """
        outcome = PaymentOutcome(outcome)

        if self._resolving is not None:
            logger.debug("Resolve already in flight; ignoring %s", outcome.value)
            return await asyncio.shield(self._resolving)

        session = self.session
        if (
            session.state is not SessionState.AWAITING_USER_CONFIRMATION
            or not session.pending_expense_id
        ):
            logger.debug("confirm(%s) ignored in %s", outcome.value, session.state.value)
            return session.state

        session.confirming = True
        session.error = None
        self._transition(SessionState.RESOLVING)

        self._resolving = asyncio.ensure_future(
            self._resolve(session.pending_expense_id, outcome)
        )
        return await asyncio.shield(self._resolving)

    async def _resolve(self, expense_id: str, outcome: PaymentOutcome) -> SessionState:
        session = self.session
        try:
            try:
                record = await self.store.confirm(expense_id, outcome.value)
            except PendingExpenseNotFoundError as exc:
                # Nothing left to retry against
                logger.warning("Pending expense %s not found; clearing session", expense_id)
                self._clear_pending()
                session.error = exc.message
                self._transition(SessionState.IDLE)
            except PaymentsError as exc:
                self._fail_resolve(expense_id, exc)
            except Exception:
                logger.exception("Resolving expense %s failed", expense_id)
                self._fail_resolve(expense_id, PaymentNetworkError())
            else:
                self._clear_pending()
                self._transition(SessionState.IDLE)
                logger.info("Expense %s resolved as %s", expense_id, record.get('status'))
                await self._notify_success(record)
        finally:
            self._resolving = None
        return session.state

    def _fail_resolve(self, expense_id: str, exc: PaymentsError) -> None:
        logger.warning("Resolving expense %s failed: %s", expense_id, exc.message)
        self.session.confirming = False
        self.session.error = exc.message
        self._transition(SessionState.AWAITING_USER_CONFIRMATION)

    async def _notify_success(self, record: dict) -> None:
        if self.on_success is None:
            return
        try:
            result = self.on_success(record)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Success callback failed for expense %s", record.get('id'))

    def dismiss(self) -> bool:
        """
        Close the prompt without answering.

        Refused while a resolve is in flight. The server record stays
        PENDING until the expiry job reclaims it.

        Returns:
            True if the session was cleared.
        """
        session = self.session
        if session.confirming:
            logger.debug("dismiss ignored while a resolve is in flight")
            return False
        if session.state is not SessionState.AWAITING_USER_CONFIRMATION:
            return False

        expense_id = session.pending_expense_id
        self._clear_pending()
        session.error = None
        self._transition(SessionState.IDLE)
        logger.info("Dismissed pending expense %s; left for expiry", expense_id)
        return True
