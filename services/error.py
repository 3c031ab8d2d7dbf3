from contextlib import contextmanager
import sys
import traceback
import services.logger as log

l = log.get_logger()

def _handle_uncaught_exceptions(exc_type, exc_value, exc_traceback):
    """Global exception handler for uncaught exceptions."""
    if issubclass(exc_type, KeyboardInterrupt):
        # Ctrl+C keeps the default behaviour
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    l.critical(
        "Unhandled exception caught:\n"
        + ''.join(traceback.format_exception(exc_type, exc_value, exc_traceback))
    )

# Install global exception hook
sys.excepthook = _handle_uncaught_exceptions

def raise_and_log(message: str, exception_type: type = Exception):
    """
    Log an error and then raise the specified exception.

    :param message: Error message to log and include in the exception.
    :param exception_type: Type of exception to raise (default: Exception).
    """
    l.error(f"Raising exception: {message}")
    raise exception_type(message)

@contextmanager
def relay_guard(bridge_name: str, action: str, payload=None):
    """
    Catch, log and swallow any failure of a single relay.

    No ``Exception`` raised inside the block escapes; cancellation still does.

    :param bridge_name: Name of the bridge the event belongs to.
    :param action: What was being attempted, e.g. "Could not send photo".
    :param payload: Optional object describing the failed message.
    """
    try:
        yield
    except Exception as e:
        l.error(f"[{bridge_name}] {action}: {e!r}")
        if payload is not None:
            l.error(f"[{bridge_name}] Failed message: {payload!r}")


class AttachmentError(Exception):
    """A Telegram file could not be resolved or downloaded."""
