import asyncio
import json
import pytest
from apps.payments.exceptions import (
    PaymentNetworkError,
    PendingExpenseNotFoundError,
    SessionStateError,
    UpiValidationError,
)
from apps.payments.session import (
    FileSessionStorage,
    MemorySessionStorage,
    PaymentSessionController,
    SessionState,
    assert_transition,
)
from apps.payments.upi import PaymentForm
from .conftest import FakeStore, settle

PAYLOAD = {'amount': '250.50', 'category': 'Food', 'description': 'UPI to chaiwala@okaxis'}


# =============================================================================
# Initiate Tests
# =============================================================================

class TestInitiate:
    """Tests for initiate and the await-before-redirect ordering"""

    async def test_no_id_before_server_ack(self, controller, store, storage):
        """The id is unknown until the delayed create call answers."""
        store.initiate_gate = asyncio.Event()

        task = asyncio.ensure_future(controller.initiate(PAYLOAD))
        await settle()

        assert controller.state is SessionState.AWAITING_SERVER_ACK
        assert controller.session.pending_expense_id is None
        assert storage.load() is None
        assert not task.done()

        store.initiate_gate.set()

        assert await task == 'exp-1'
        assert controller.state is SessionState.AWAITING_RETURN
        assert controller.session.pending_expense_id == 'exp-1'
        assert storage.load() == 'exp-1'

    async def test_failure_reverts_to_idle(self, controller, store, storage):
        """A failed create leaves nothing behind."""
        store.initiate_error = PaymentNetworkError()

        with pytest.raises(PaymentNetworkError):
            await controller.initiate(PAYLOAD)

        assert controller.state is SessionState.IDLE
        assert controller.session.pending_expense_id is None
        assert controller.session.error == 'Could not reach server. Please try again.'
        assert storage.load() is None

    async def test_unexpected_failure_becomes_network_error(self, controller, store):
        """Arbitrary store exceptions are converted at the boundary."""
        store.initiate_error = RuntimeError('socket exploded')

        with pytest.raises(PaymentNetworkError):
            await controller.initiate(PAYLOAD)

        assert controller.state is SessionState.IDLE

    async def test_cancelled_initiate_reverts_to_idle(self, controller, store, storage):
        """Cancelling the wait for the server leaves the controller usable."""
        store.initiate_gate = asyncio.Event()

        task = asyncio.ensure_future(controller.initiate(PAYLOAD))
        await settle()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.state is SessionState.IDLE
        assert controller.session.pending_expense_id is None
        assert storage.load() is None

        store.initiate_gate = None
        assert await controller.initiate(PAYLOAD) == 'exp-1'
        assert controller.state is SessionState.AWAITING_RETURN

    async def test_only_from_idle(self, controller, store):
        """A second payment cannot start while one is pending."""
        await controller.initiate(PAYLOAD)

        with pytest.raises(SessionStateError):
            await controller.initiate(PAYLOAD)

        assert len(store.initiate_calls) == 1
        assert controller.state is SessionState.AWAITING_RETURN


class TestPay:
    """Tests for validate, initiate, then redirect"""

    async def test_amount_normalized_in_payload_and_link(self, controller, store):
        """250.5 is sent as "250.50" and the link ends am=250.50&cu=INR."""
        redirects = []
        form = PaymentForm(upi_id='chaiwala@okaxis', amount='250.5', category='Food')

        expense_id = await controller.pay(form, redirects.append)

        assert expense_id == 'exp-1'
        assert store.initiate_calls == [PAYLOAD]
        assert len(redirects) == 1
        assert redirects[0].endswith('am=250.50&cu=INR')

    async def test_redirect_waits_for_ack(self, controller, store):
        """No redirect happens while the create call is in flight."""
        store.initiate_gate = asyncio.Event()
        redirects = []
        form = PaymentForm(upi_id='chaiwala@okaxis', amount='10', category='Food')

        task = asyncio.ensure_future(controller.pay(form, redirects.append))
        await settle()

        assert redirects == []

        store.initiate_gate.set()
        await task

        assert len(redirects) == 1
        assert controller.session.pending_expense_id == 'exp-1'

    async def test_async_redirect_awaited(self, controller):
        """An async redirect callable is awaited."""
        redirects = []

        async def redirect(link):
            redirects.append(link)

        await controller.pay(
            PaymentForm(upi_id='chaiwala@okaxis', amount='10', category='Food'), redirect
        )

        assert len(redirects) == 1

    async def test_validation_error_sends_nothing(self, controller, store):
        """Invalid forms never reach the server."""
        redirects = []

        with pytest.raises(UpiValidationError):
            await controller.pay(
                PaymentForm(upi_id='bad', amount='10', category='Food'), redirects.append
            )

        assert store.initiate_calls == []
        assert redirects == []
        assert controller.state is SessionState.IDLE
        assert controller.session.error.startswith('Invalid UPI ID')

    @pytest.mark.parametrize('amount', ['1e26', '1e1000'])
    async def test_oversized_amount_is_validation_error(self, controller, store, amount):
        """Amounts too large to format are rejected before any call."""
        redirects = []

        with pytest.raises(UpiValidationError):
            await controller.pay(
                PaymentForm(upi_id='chaiwala@okaxis', amount=amount, category='Food'),
                redirects.append,
            )

        assert store.initiate_calls == []
        assert redirects == []
        assert controller.state is SessionState.IDLE

    async def test_failed_initiate_no_redirect(self, controller, store):
        """A network failure on create means no redirect."""
        store.initiate_error = PaymentNetworkError()
        redirects = []

        with pytest.raises(PaymentNetworkError):
            await controller.pay(
                PaymentForm(upi_id='chaiwala@okaxis', amount='10', category='Food'),
                redirects.append,
            )

        assert redirects == []
        assert controller.state is SessionState.IDLE


# =============================================================================
# Return Tests
# =============================================================================

class TestOnPossibleReturn:
    """Tests for return signal handling"""

    async def test_second_signal_is_noop(self, controller):
        """Prompt comes up exactly once for repeated signals."""
        prompts = []
        controller.subscribe(
            lambda session: prompts.append(session.state)
            if session.state is SessionState.AWAITING_USER_CONFIRMATION else None
        )
        await controller.initiate(PAYLOAD)

        assert controller.on_possible_return() is True
        assert controller.on_possible_return() is False

        assert controller.state is SessionState.AWAITING_USER_CONFIRMATION
        assert controller.session.awaiting_confirmation is True
        assert len(prompts) == 1

    def test_ignored_when_idle(self, controller):
        """Focus events with no pending payment do nothing."""
        assert controller.on_possible_return() is False
        assert controller.state is SessionState.IDLE

    async def test_ignored_before_ack(self, controller, store):
        """A signal during the create call is ignored."""
        store.initiate_gate = asyncio.Event()
        task = asyncio.ensure_future(controller.initiate(PAYLOAD))
        await settle()

        assert controller.on_possible_return() is False

        store.initiate_gate.set()
        await task
        assert controller.state is SessionState.AWAITING_RETURN


# =============================================================================
# Confirm Tests
# =============================================================================

class TestConfirm:
    """Tests for resolving the pending expense"""

    async def test_confirm_success(self, awaiting_confirmation, store, storage, successes):
        """Success clears the session and notifies the ledger."""
        controller = awaiting_confirmation

        state = await controller.confirm('CONFIRMED')

        assert state is SessionState.IDLE
        assert store.confirm_calls == [('exp-1', 'CONFIRMED')]
        assert controller.session.pending_expense_id is None
        assert controller.session.confirming is False
        assert storage.load() is None
        assert [record['status'] for record in successes] == ['CONFIRMED']

    async def test_double_tap_sends_one_request(self, awaiting_confirmation, store, successes):
        """Two rapid taps: one resolve call, same final state for both."""
        controller = awaiting_confirmation
        store.confirm_gate = asyncio.Event()

        first = asyncio.ensure_future(controller.confirm('CONFIRMED'))
        await settle()
        second = asyncio.ensure_future(controller.confirm('CONFIRMED'))
        await settle()

        assert controller.state is SessionState.RESOLVING
        store.confirm_gate.set()

        results = await asyncio.gather(first, second)

        assert results == [SessionState.IDLE, SessionState.IDLE]
        assert len(store.confirm_calls) == 1
        assert len(successes) == 1

    async def test_network_failure_allows_retry(self, awaiting_confirmation, store, successes):
        """A failed resolve keeps the prompt up and the id for a retry."""
        controller = awaiting_confirmation
        store.confirm_error = PaymentNetworkError()

        state = await controller.confirm('CONFIRMED')

        assert state is SessionState.AWAITING_USER_CONFIRMATION
        assert controller.session.pending_expense_id == 'exp-1'
        assert controller.session.confirming is False
        assert controller.session.error == 'Could not reach server. Please try again.'

        store.confirm_error = None
        assert await controller.confirm('CONFIRMED') is SessionState.IDLE
        assert controller.session.error is None
        assert len(store.confirm_calls) == 2
        assert len(successes) == 1

    async def test_unexpected_failure_allows_retry(self, awaiting_confirmation, store):
        """Non-PaymentsError failures are handled the same as network errors."""
        controller = awaiting_confirmation
        store.confirm_error = ValueError('bad json')

        state = await controller.confirm('CANCELLED')

        assert state is SessionState.AWAITING_USER_CONFIRMATION
        assert controller.session.pending_expense_id == 'exp-1'

    async def test_not_found_clears_session(self, awaiting_confirmation, store, storage, successes):
        """An unknown id cannot be retried, so the session is cleared."""
        controller = awaiting_confirmation
        store.confirm_error = PendingExpenseNotFoundError()

        state = await controller.confirm('CONFIRMED')

        assert state is SessionState.IDLE
        assert controller.session.pending_expense_id is None
        assert controller.session.error == PendingExpenseNotFoundError.default_message
        assert storage.load() is None
        assert successes == []

    async def test_confirm_outside_prompt_does_nothing(self, controller, store):
        """Without a return there is nothing to confirm."""
        await controller.initiate(PAYLOAD)

        state = await controller.confirm('CONFIRMED')

        assert state is SessionState.AWAITING_RETURN
        assert store.confirm_calls == []

    async def test_invalid_outcome(self, awaiting_confirmation, store):
        """Only CONFIRMED and CANCELLED are outcomes."""
        with pytest.raises(ValueError):
            await awaiting_confirmation.confirm('PENDING')

        assert store.confirm_calls == []

    async def test_async_success_callback(self, store):
        """An async success callback is awaited."""
        refreshed = []

        async def refresh_ledger(record):
            refreshed.append(record['id'])

        controller = PaymentSessionController(store, on_success=refresh_ledger)
        await controller.initiate(PAYLOAD)
        controller.on_possible_return()

        await controller.confirm('CONFIRMED')

        assert refreshed == ['exp-1']

    async def test_failing_success_callback(self, store):
        """A broken ledger refresh does not undo the resolution."""
        def refresh_ledger(record):
            raise RuntimeError('ledger offline')

        controller = PaymentSessionController(store, on_success=refresh_ledger)
        await controller.initiate(PAYLOAD)
        controller.on_possible_return()

        assert await controller.confirm('CONFIRMED') is SessionState.IDLE


# =============================================================================
# Dismiss Tests
# =============================================================================

class TestDismiss:
    """Tests for closing the prompt without answering"""

    async def test_dismiss_clears_locally(self, awaiting_confirmation, store, storage):
        """Dismiss returns to IDLE and sends nothing to the server."""
        controller = awaiting_confirmation

        assert controller.dismiss() is True

        assert controller.state is SessionState.IDLE
        assert controller.session.pending_expense_id is None
        assert storage.load() is None
        assert store.confirm_calls == []

    async def test_dismiss_while_confirming(self, awaiting_confirmation, store):
        """Dismiss during an in-flight resolve changes nothing."""
        controller = awaiting_confirmation
        store.confirm_gate = asyncio.Event()

        task = asyncio.ensure_future(controller.confirm('CONFIRMED'))
        await settle()

        assert controller.dismiss() is False
        assert controller.state is SessionState.RESOLVING
        assert controller.session.pending_expense_id == 'exp-1'

        store.confirm_gate.set()
        assert await task is SessionState.IDLE

    async def test_dismiss_before_return(self, controller):
        """Only the prompt can be dismissed."""
        await controller.initiate(PAYLOAD)

        assert controller.dismiss() is False
        assert controller.state is SessionState.AWAITING_RETURN


# =============================================================================
# Restore and Storage Tests
# =============================================================================

class TestRestore:
    """Tests for resuming after a reload"""

    def test_restore_stored_id(self, store):
        """A stored id resumes in AWAITING_RETURN."""
        storage = MemorySessionStorage()
        storage.save('exp-9')
        controller = PaymentSessionController(store, storage=storage)

        assert controller.restore() == 'exp-9'
        assert controller.state is SessionState.AWAITING_RETURN
        assert controller.on_possible_return() is True

    def test_restore_nothing(self, controller):
        """With nothing stored the session stays IDLE."""
        assert controller.restore() is None
        assert controller.state is SessionState.IDLE

    async def test_file_storage_survives_restart(self, tmp_path):
        """The pending id is readable by a fresh controller."""
        path = tmp_path / 'session.json'
        await PaymentSessionController(
            FakeStore('exp-7'), storage=FileSessionStorage(path)
        ).initiate(PAYLOAD)

        assert json.loads(path.read_text()) == {'pendingExpenseId': 'exp-7'}

        restored = PaymentSessionController(FakeStore(), storage=FileSessionStorage(path))
        assert restored.restore() == 'exp-7'


class TestFileSessionStorage:
    """Tests for the JSON file backend"""

    def test_roundtrip_and_clear(self, tmp_path):
        """save, load and clear."""
        storage = FileSessionStorage(tmp_path / 'nested' / 'session.json')

        storage.save('exp-1')
        assert storage.load() == 'exp-1'

        storage.clear()
        assert storage.load() is None
        storage.clear()

    def test_corrupt_file_ignored(self, tmp_path):
        """Unreadable content loads as no session."""
        path = tmp_path / 'session.json'
        path.write_text('{not json')

        assert FileSessionStorage(path).load() is None


# =============================================================================
# State Machine Tests
# =============================================================================

class TestStateMachine:
    """Tests for transition rules and observers"""

    def test_illegal_transition(self):
        """Skipping states is rejected."""
        with pytest.raises(SessionStateError):
            assert_transition(SessionState.IDLE, SessionState.RESOLVING)
        with pytest.raises(SessionStateError):
            assert_transition(SessionState.AWAITING_RETURN, SessionState.IDLE)

    async def test_full_cycle_observed(self, controller):
        """Observers see every state in order."""
        seen = []
        controller.subscribe(lambda session: seen.append(session.state))

        await controller.initiate(PAYLOAD)
        controller.on_possible_return()
        await controller.confirm('CONFIRMED')

        assert seen == [
            SessionState.AWAITING_SERVER_ACK,
            SessionState.AWAITING_RETURN,
            SessionState.AWAITING_USER_CONFIRMATION,
            SessionState.RESOLVING,
            SessionState.IDLE,
        ]

    async def test_unsubscribe(self, controller):
        """Unsubscribed observers are not called."""
        seen = []
        unsubscribe = controller.subscribe(lambda session: seen.append(session.state))
        unsubscribe()

        await controller.initiate(PAYLOAD)

        assert seen == []
