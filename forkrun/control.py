r"""detecting whether exec worked

Before exec, the child marks its end of a ControlChannel close-on-exec. A
successful exec closes it without a word; a failed one leaves the child to
write a LaunchReport into it. The parent reads its end until end-of-stream
and gets None or the report:

>>> import os
>>> control = ControlChannel()
>>> pid = os.fork()
>>> if pid == 0: control.launch(lambda: os.execvp('/nonexistent/x', ['x']))
>>> report = control.drain()
>>> report.kind, report.errno
('FileNotFoundError', 2)
>>> os.waitpid(pid, 0)[1] >> 8
127

>>> control = ControlChannel()
>>> pid = os.fork()
>>> if pid == 0: control.launch(lambda: os.execvp('true', ['true']))
>>> control.drain() is None
True
>>> os.waitpid(pid, 0)[1]
0

The report only carries what both sides agree on, not the exception itself:

>>> LaunchReport.decode(LaunchReport('PermissionError', 'Permission denied', 13).encode())
LaunchReport(kind='PermissionError', message='Permission denied', errno=13)
"""

__all__ = 'LaunchReport', 'ControlChannel', 'LAUNCH_FAILURE_EXIT'

import fcntl
import os
from dataclasses import dataclass
from .channel import Channel
from .fd import FD
from .errors import LaunchError

LAUNCH_FAILURE_EXIT = 127


@dataclass(frozen=True)
class LaunchReport:
    """why the child could not exec"""
    kind: str
    message: str
    errno: int = None

    @classmethod
    def from_exception(cls, error):
        if isinstance(error, OSError):
            message = error.strerror or str(error)
            if error.filename is not None:
                message = f'{message}: {error.filename!r}'
            return cls(type(error).__name__, message, error.errno)
        return cls(type(error).__name__, str(error))

    def encode(self):
        errno = '' if self.errno is None else str(self.errno)
        return '\n'.join((self.kind, errno, self.message)).encode(errors='replace')

    @classmethod
    def decode(cls, data):
        kind, errno, message = data.decode(errors='replace').split('\n', maxsplit=2)
        return cls(kind, message, int(errno) if errno else None)

    def error(self, command, pid=None):
        return LaunchError(command, self.kind, self.message, self.errno, pid)


class ControlChannel(Channel):
    """a caller-invisible pipe that only carries a LaunchReport, if anything"""
    def __init__(self):
        super().__init__(reading=1)

    def arm(self, above=0):
        """child side: keep only the write end, and only until exec

        The write end is moved to a descriptor no lower than `above`, out of
        the way of the ones about to be redirected.
        """
        self.close_parent()
        if self.child_end.fileno() < above:
            fd = fcntl.fcntl(self.child_end.fileno(), fcntl.F_DUPFD_CLOEXEC, above)
            self.child_end.close()
            self.child_end = FD(fd, 'wb')
        self.child_end.cloexec = True

    def report(self, error):
        """child side: send the reason exec failed"""
        self.child_end.write(LaunchReport.from_exception(error).encode())

    def launch(self, action, above=0):
        """child side: arm, run action (which should exec) and never return

        Anything action raises, or it returning at all, is reported.
        """
        try:
            self.arm(above)
            action()
            raise RuntimeError('exec returned without replacing the process')
        except BaseException as e:
            try:
                self.report(e)
            finally:
                os._exit(LAUNCH_FAILURE_EXIT)

    def drain(self):
        """parent side: read to end-of-stream and return a report or None"""
        self.close_child()
        try:
            data = self.parent_end.read()
        finally:
            self.close_parent()
        return LaunchReport.decode(data) if data else None
