import asyncio
import pytest
from apps.payments.session import MemorySessionStorage, PaymentSessionController


class FakeStore:
    """In-memory stand-in for ExpenseApiClient with optional delays and failures."""

    def __init__(self, expense_id='exp-1'):
        self.expense_id = expense_id
        self.initiate_calls = []
        self.confirm_calls = []
        self.initiate_gate = None
        self.confirm_gate = None
        self.initiate_error = None
        self.confirm_error = None

    async def initiate(self, payload):
        self.initiate_calls.append(payload)
        if self.initiate_gate is not None:
            await self.initiate_gate.wait()
        if self.initiate_error is not None:
            raise self.initiate_error
        return self.expense_id

    async def confirm(self, expense_id, status):
        self.confirm_calls.append((expense_id, status))
        if self.confirm_gate is not None:
            await self.confirm_gate.wait()
        if self.confirm_error is not None:
            raise self.confirm_error
        return {'id': expense_id, 'status': status, 'amount': '250.50'}


class FakeSignalSource:
    """Both focus and visibility signals, fired by hand."""

    def __init__(self):
        self.focus_listeners = []
        self.visibility_listeners = []

    def add_focus_listener(self, handler):
        self.focus_listeners.append(handler)

    def remove_focus_listener(self, handler):
        self.focus_listeners.remove(handler)

    def add_visibility_listener(self, handler):
        self.visibility_listeners.append(handler)

    def remove_visibility_listener(self, handler):
        self.visibility_listeners.remove(handler)

    def focus(self):
        for handler in list(self.focus_listeners):
            handler()

    def visibility(self, state):
        for handler in list(self.visibility_listeners):
            handler(state)


class FocusOnlySource:
    """A platform that only reports focus."""

    def __init__(self):
        self.listeners = []

    def add_focus_listener(self, handler):
        self.listeners.append(handler)

    def remove_focus_listener(self, handler):
        self.listeners.remove(handler)

    def focus(self):
        for handler in list(self.listeners):
            handler()


async def settle():
    """Let pending tasks run up to their next suspension point."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def store():
    """Fake pending expense store."""
    return FakeStore()


@pytest.fixture
def storage():
    """In-memory session storage."""
    return MemorySessionStorage()


@pytest.fixture
def successes():
    """Records passed to the success callback."""
    return []


@pytest.fixture
def controller(store, storage, successes):
    """Controller wired to the fake store."""
    return PaymentSessionController(store, storage=storage, on_success=successes.append)


@pytest.fixture
async def awaiting_confirmation(controller):
    """Controller with a pending expense and the prompt up."""
    await controller.initiate({'amount': '250.50', 'category': 'Food', 'description': ''})
    controller.on_possible_return()
    return controller


@pytest.fixture
def signals():
    """Fake platform signal source."""
    return FakeSignalSource()
