r"""the parent's side of a launched child

A ResultHandle owns the parent ends of the channels a launch created, the
child's pid and, once waited for, its ExitStatus.

>>> from forkrun import proc, INPUT, OUTPUT
>>> handle = proc('cat', INPUT, OUTPUT)
>>> handle  # doctest: +ELLIPSIS
ResultHandle(pid=..., command='cat', ends=(INPUT, OUTPUT), status=None)
>>> handle.input.write(b'meow\n')
5
>>> handle.close(INPUT); handle.close(INPUT)
>>> handle.output.read()
b'meow\n'
>>> handle.complete()
ExitStatus(command='cat', returncode=0)
>>> handle.complete() is handle.complete()
True

Iterating gives the open ends, always in descriptor order, then the pid:

>>> w, r, pid = proc('cat', OUTPUT, INPUT)
>>> w.write(b'hi'); w.close(); r.read()
2
b'hi'
>>> r.close(); os.waitpid(pid, 0)[1]
0
"""

__all__ = 'ResultHandle', 'strip_line', 'release'

import logging
import os
import weakref
from signal import Signals, SIGKILL, SIGTERM
from .plan import Role, key
from .posix_wait import wait
from .status import ExitStatus

logger = logging.getLogger(__name__)

# every ResultHandle still around, so a forked child can let go of their ends
LIVE = weakref.WeakSet()


def get_signal(sig: Signals | int | str) -> Signals:
    if isinstance(sig, str):
        sig = sig.upper()
        return Signals[sig if sig.startswith('SIG') else f'SIG{sig}']
    return Signals(sig)


def strip_line(line):
    r"""drop one trailing line terminator

    >>> strip_line(b'a\r\n'), strip_line(b'b\n'), strip_line(b'c')
    (b'a', b'b', b'c')
    """
    if line.endswith(b'\r\n'):
        return line[:-2]
    if line.endswith(b'\n'):
        return line[:-1]
    return line


def release(keep=()):
    """in a freshly forked child: close the ends the parent's handles own

    Ends on a descriptor in keep stay open.
    """
    for handle in list(LIVE):
        for k, end in list(handle.ends.items()):
            if end.closed or end.fileno() not in keep:
                del handle.ends[k]
                end.close()


class ResultHandle:
    """parent-side registry of one child's channel ends, pid and exit status

    Every end it tracks is open; closing an end removes it. The pid stays
    for reference, but nothing is sent to it once it has been reaped.
    """
    def __init__(self, ends, pid, command=None):
        """ends: {plan key: FD} of parent ends; pid: the child; command: for messages"""
        self.ends = dict(sorted(ends.items()))
        self.pid = pid
        self.command = command
        self.status = None
        LIVE.add(self)

    @property
    def input(self):
        return self.end(Role.INPUT)

    @property
    def output(self):
        return self.end(Role.OUTPUT)

    @property
    def error(self):
        return self.end(Role.ERROR)

    def end(self, k):
        """the open parent end for a key, or None"""
        self.ios()
        return self.ends.get(key(k))

    def ios(self):
        """the open parent ends, in descriptor order

        Ends closed behind the handle's back are dropped here.
        """
        for k in [k for k, end in self.ends.items() if end.closed]:
            del self.ends[k]
        return tuple(self.ends.values())

    def close(self, *keys):
        """close the ends for keys, or all of them

        Ends that are already closed or were never tracked are skipped.
        """
        keys = [key(k) for k in keys] if keys else list(self.ends)
        error = None
        for k in keys:
            end = self.ends.pop(k, None)
            if end is None:
                continue
            try:
                end.close()
            except OSError as e:
                error = error or e
        logger.debug('pid %d: closed %s', self.pid, keys)
        if error is not None:
            raise error

    @property
    def reaped(self):
        return self.status is not None

    def wait(self):
        """block until the child exits; later calls return the same status"""
        if self.status is None:
            self.status = ExitStatus(self.command, wait(self.pid))
            logger.debug('pid %d: %s exited with %s', self.pid, self.command, self.status.describe())
        return self.status

    def poll(self):
        """the status if the child has exited, None if it is still running

        >>> from forkrun import proc
        >>> handle = proc('sleep', '10'); handle.poll() is None
        True
        >>> handle.kill(); handle.wait().signal
        <Signals.SIGTERM: 15>
        """
        if self.status is None:
            returncode = wait(self.pid, block=False)
            if returncode is not None:
                self.status = ExitStatus(self.command, returncode)
        return self.status

    def kill(self, sig: Signals | int | str = SIGTERM, dead_okay: bool | None = None):
        r"""send a signal to the child unless it has been reaped already

        sig can be an integer or the signal name, case insensitive, with or
        without the 'SIG' prefix

        dead_okay=False raises ProcessLookupError if the process is gone; by
        default dead_okay=True for SIGTERM and SIGKILL and False otherwise

        >>> from forkrun import proc
        >>> handle = proc('sleep', '10'); handle.kill('kill'); handle.wait()
        ExitStatus(command='sleep 10', returncode=-9)
        >>> handle.kill()
        """
        if self.status is not None:
            return
        sig = get_signal(sig)
        if dead_okay is None:
            dead_okay = sig == SIGTERM or sig == SIGKILL
        logger.debug('pid %d: sending %s', self.pid, sig.name)
        try:
            os.kill(self.pid, sig)
        except ProcessLookupError:
            if not dead_okay:
                raise

    def complete(self):
        """close every end, then wait"""
        self.close()
        return self.wait()

    def check(self):
        """wait and raise RunFailure unless the child succeeded"""
        return self.wait().check()

    def lines(self, k=Role.OUTPUT):
        """iterate over the lines of an end, terminators stripped"""
        end = self.end(k)
        if end is None:
            raise ValueError(f'no open channel for {key(k)!r}')
        for line in end:
            yield strip_line(line)

    def __iter__(self):
        return iter((*self.ios(), self.pid))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def __repr__(self):
        self.ios()
        ends = tuple(k.name if isinstance(k, Role) else k for k in self.ends)
        ends = repr(ends).replace("'", '')
        return (
            f'{type(self).__name__}(pid={self.pid}, command={self.command!r}, '
            f'ends={ends}, status={self.status!r})'
        )
