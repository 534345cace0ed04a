__all__ = 'ExitStatus',

from signal import Signals
from .errors import RunFailure


class ExitStatus:
    """how a child process ended

    returncode follows subprocess: the exit code, or the negated signal
    number if a signal killed the child.

    >>> ExitStatus('true', 0)
    ExitStatus(command='true', returncode=0)
    >>> s = ExitStatus('sleep 10', -9); s.signal, s.code, s.success
    (<Signals.SIGKILL: 9>, None, False)
    >>> ExitStatus('exit 2', 2).code
    2
    >>> ExitStatus('false', 1).check()
    Traceback (most recent call last):
    ...
    forkrun.errors.RunFailure: "false" exited with status 1
    """
    def __init__(self, command, returncode):
        self.command = command
        self.returncode = returncode

    @property
    def success(self):
        return self.returncode == 0

    @property
    def code(self):
        return self.returncode if self.returncode >= 0 else None

    @property
    def signal(self):
        if self.returncode >= 0:
            return None
        try:
            return Signals(-self.returncode)
        except ValueError:
            return -self.returncode

    def describe(self):
        """'status N' or 'signal SIGNAME', for messages"""
        if self.signal is None:
            return f'status {self.code}'
        return f'signal {getattr(self.signal, "name", self.signal)}'

    def check(self):
        """raise RunFailure unless the child succeeded"""
        if not self.success:
            raise RunFailure(self)
        return self

    def __bool__(self):
        return self.success

    def __repr__(self):
        return f'{type(self).__name__}(command={self.command!r}, returncode={self.returncode!r})'
