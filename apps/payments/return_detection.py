"""
Return detection for the UPI handoff.

Platforms disagree on which signal fires when the user comes back from the
payment app: some only report focus, others only a visibility change. The
detector subscribes to every source it is given and forwards each signal
to ``PaymentSessionController.on_possible_return``. Duplicate signals are
expected and are not filtered here; the controller ignores them.
"""

import logging
from typing import Callable, Iterable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

VISIBLE = 'visible'
HIDDEN = 'hidden'


@runtime_checkable
class FocusSignalSource(Protocol):
    """Emits a signal when the hosting surface regains focus."""

    def add_focus_listener(self, handler: Callable[[], None]) -> None: ...

    def remove_focus_listener(self, handler: Callable[[], None]) -> None: ...


@runtime_checkable
class VisibilitySignalSource(Protocol):
    """Emits ``'visible'`` / ``'hidden'`` when page visibility changes."""

    def add_visibility_listener(self, handler: Callable[[str], None]) -> None: ...

    def remove_visibility_listener(self, handler: Callable[[str], None]) -> None: ...


class ReturnDetector:
    """
    Subscribes once for the lifetime of the hosting view.

    Handlers read the controller's shared session on every call, so nothing
    needs re-subscribing when the session changes.

    Usage::

        with ReturnDetector(controller, [window_signals]):
            await run_view()
    """

    def __init__(self, controller, sources: Iterable[object]):
        self.controller = controller
        self.sources = list(sources)
        self.started = False

    def _on_focus(self) -> None:
        self.controller.on_possible_return()

    def _on_visibility_change(self, visibility: str) -> None:
        if visibility == VISIBLE:
            self.controller.on_possible_return()

    def start(self) -> None:
        if self.started:
            return

        subscribed = 0
        for source in self.sources:
            if isinstance(source, FocusSignalSource):
                source.add_focus_listener(self._on_focus)
                subscribed += 1
            if isinstance(source, VisibilitySignalSource):
                source.add_visibility_listener(self._on_visibility_change)
                subscribed += 1

        if not subscribed:
            logger.warning("No focus or visibility signal available; returns will go unnoticed")
        self.started = True

    def stop(self) -> None:
        if not self.started:
            return

        for source in self.sources:
            if isinstance(source, FocusSignalSource):
                source.remove_focus_listener(self._on_focus)
            if isinstance(source, VisibilitySignalSource):
                source.remove_visibility_listener(self._on_visibility_change)
        self.started = False

    def __enter__(self) -> 'ReturnDetector':
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
