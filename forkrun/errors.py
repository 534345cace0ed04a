"""everything forkrun raises

>>> from forkrun.status import ExitStatus
>>> str(RunFailure(ExitStatus('sleep 10', -9)))
'"sleep 10" exited with signal SIGKILL'
>>> e = LaunchError('nosuch -x', 'FileNotFoundError', 'No such file or directory', 2)
>>> str(e)
'"nosuch -x" could not be launched: FileNotFoundError: [Errno 2] No such file or directory'
>>> isinstance(ResourceError(11, 'fork failed'), OSError)
True
"""

__all__ = 'ForkrunError', 'ConfigError', 'ResourceError', 'LaunchError', 'RunFailure'


class ForkrunError(Exception):
    """base class for errors raised by forkrun"""


class ConfigError(ForkrunError, ValueError):
    """a directive, option or child action that makes no sense"""


class ResourceError(ForkrunError, OSError):
    """creating a channel or the child process failed

    Whatever had been allocated for the launch is closed by the time this is
    raised.
    """


class LaunchError(ForkrunError):
    """the child could not replace itself with the requested program

    This is raised in the parent after the child has been reaped.
    """
    def __init__(self, command, kind, message, errno=None, pid=None):
        self.command = command
        self.kind = kind
        self.message = message
        self.errno = errno
        self.pid = pid
        detail = message if errno is None else f'[Errno {errno}] {message}'
        super().__init__(f'"{command}" could not be launched: {kind}: {detail}')


class RunFailure(ForkrunError):
    """the program ran and exited unsuccessfully"""
    def __init__(self, status):
        self.status = status
        super().__init__(f'"{status.command}" exited with {status.describe()}')

    @property
    def command(self):
        return self.status.command

    @property
    def code(self):
        return self.status.code

    @property
    def signal(self):
        return self.status.signal
