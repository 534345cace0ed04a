"""reaping child processes

>>> import os
>>> pid = os.fork()
>>> if pid == 0: os._exit(3)
>>> wait(pid)
3
"""

__all__ = 'wait', 'decode'

import os


def decode(status):
    """turn a raw os.waitpid() status into a subprocess-style returncode"""
    if os.WIFSIGNALED(status):
        return -os.WTERMSIG(status)
    if os.WIFEXITED(status):
        return os.WEXITSTATUS(status)
    if os.WIFSTOPPED(status):
        return -os.WSTOPSIG(status)
    raise RuntimeError(f'weird exit status: {hex(status)}')


def wait(pid, block=True):
    """wait on a pid to complete and return its returncode

    With block=False, returns None if the child is still running.
    """
    pid_, status = os.waitpid(pid, 0 if block else os.WNOHANG)
    if pid_ == 0 and not block:
        return None
    if pid_ != pid:
        raise RuntimeError(f'pid is {pid_}, expected {pid}')
    return decode(status)
