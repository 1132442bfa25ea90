"""Cooperative cancellation shared by the runner and the event handler."""

from typing import Callable, List


class CancellationToken:
    """
    Set once by the caller, polled by consumers once per event.

    Example:
        token = CancellationToken()
        task = asyncio.create_task(controller.run_tests(report=report, token=token))
        ...
        token.cancel()
    """

    def __init__(self):
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        for callback in self._callbacks:
            callback()

    def on_cancelled(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Register a callback invoked once when cancel() is first called.

        Returns:
            A function that unregisters the callback
        """
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister
