import contextlib
import itertools
import logging
import signal
import typing as tp

LOGGER = logging.getLogger(__name__)


@contextlib.contextmanager
def ignore_interrupt() -> tp.Iterator[None]:
    """Ignore the KeyboardInterrupt signal."""
    orig_handler = None
    try:
        orig_handler = signal.signal(signal.SIGINT, signal.SIG_IGN)
    except ValueError as exc:
        if "signal only works in main thread" not in str(exc):
            raise

    if orig_handler is None:
        yield
        return

    try:
        yield
    finally:
        signal.signal(signal.SIGINT, orig_handler)


def prepend_flag(flag: str, contents: tp.Iterable) -> list[str]:
    """Prepend flag to every item of the sequence.

    Args:
        flag: A flag to prepend to every item of the `contents`.
        contents: A list (iterable) of content to be prepended.

    Returns:
        list[str]: A list of flag followed by content, see below.

    >>> prepend_flag("-E", ["a=1", "b=2"])
    ['-E', 'a=1', '-E', 'b=2']
    """
    return list(itertools.chain.from_iterable([flag, str(x)] for x in contents))


def split_comma_list(value: str | None) -> tuple[str, ...]:
    """Split comma separated values, strip whitespace and drop empty items.

    >>> split_comma_list(" a, b,,c ")
    ('a', 'b', 'c')
    """
    if not value:
        return ()
    return tuple(v.strip() for v in value.split(",") if v.strip())
