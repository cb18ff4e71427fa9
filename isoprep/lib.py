import contextlib
import signal
import sys
import threading
from typing import Any, Dict, Iterator, NoReturn

from .errors import Interrupted

GUARDED_SIGNALS = tuple(getattr(signal, name) for name in ('SIGTERM', 'SIGHUP') if hasattr(signal, name))


def warn(message: str) -> None:
	print(f'Warning: {message}', file=sys.stderr)


def _raise_interrupted(signum: int, frame: Any) -> NoReturn:
	raise Interrupted(signum)


@contextlib.contextmanager
def interrupt_guard() -> Iterator[None]:
	# Turn termination signals into exceptions so that pending `finally`
	# blocks (unmount, workspace teardown) still run.
	if threading.current_thread() is not threading.main_thread():
		yield
		return
	previous: Dict[int, Any] = {}
	for signum in GUARDED_SIGNALS:
		previous[signum] = signal.signal(signum, _raise_interrupted)
	try:
		yield
	finally:
		for signum, handler in previous.items():
			signal.signal(signum, handler)
