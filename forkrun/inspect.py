'''looking at processes and descriptors through /proc

Handy for checking that a launch left nothing behind:

>>> from forkrun import run, LaunchError
>>> before = open_fds()
>>> try: run('/nonexistent/program')
... except LaunchError as e: error = e
...
>>> open_fds() == before, error.pid in children()
(True, False)
'''

__all__ = (
    'pids', 'iter_status', 'status', 'state',
    'find_pids', 'children', 'open_fds',
)

import os
from os import listdir


def pids():
    '''yield all PIDs in /proc'''
    for file in listdir('/proc'):
        try:
            yield int(file)
        except ValueError:
            pass


def iter_status(pid):
    '''yield all key-value pairs in /proc/$PID/status'''
    try:
        with open(f'/proc/{pid}/status') as file:
            for line in file:
                key, tail = line.split(':', maxsplit=1)
                tail = tail.strip()
                try:
                    yield key, int(tail)
                except ValueError:
                    yield key, tail
    except FileNotFoundError as e:
        raise ProcessLookupError(pid) from e


def status(pid, key=None):
    '''get the PID status

    if key is None, returns a dictionary of the whole status
    if key is not None, look up the key and return its value
    '''
    return dict(iter_status(pid)) if key is None else next(
        v
        for k, v in iter_status(pid)
        if key == k
    )


def state(pid):
    '''the one-letter state of a process, e.g. 'Z' for a zombie

    >>> state(os.getpid())
    'R'
    '''
    return status(pid, 'State')[0]


def find_pids(**kwargs):
    '''find PIDs by their status, skipping those that vanish meanwhile

    e.g., find_pids(Name='bash') to find the PIDs of bash
    '''
    for pid in pids():
        try:
            if all(status(pid, key) == value for key, value in kwargs.items()):
                yield pid
        except ProcessLookupError:
            pass


def children(pid=None):
    '''the PIDs of the direct children of pid (by default, this process),
    zombies included'''
    return set(find_pids(PPid=os.getpid() if pid is None else pid))


def open_fds(pid=None):
    '''map each open descriptor of pid (by default, this process) to its target'''
    path = f'/proc/{"self" if pid is None else pid}/fd'
    fds = {}
    for name in listdir(path):
        try:
            fds[int(name)] = os.readlink(f'{path}/{name}')
        except FileNotFoundError:
            pass
    return fds
