"""what a freshly forked child does: exec a program or run a callback

>>> Exec(['ls', '-l'], argv0='listing').describe()
'ls -l'
>>> Exec('ls -l')
Traceback (most recent call last):
...
forkrun.errors.ConfigError: argv must be a sequence of strings, not a str (there is no shell)
>>> def hello(): pass
>>> Callback(hello).describe()
'<callback hello>'
"""

__all__ = 'Exec', 'Callback', 'describe'

import os
import sys
import traceback
from dataclasses import dataclass
from .errors import ConfigError

# what CPython exits with when flushing stdout at shutdown fails
FLUSH_FAILURE_EXIT = 120


@dataclass(frozen=True)
class Exec:
    """replace the child with a program; argv is used as is, no shell"""
    argv: tuple
    argv0: str = None

    def __post_init__(self):
        if isinstance(self.argv, (str, bytes)):
            raise ConfigError(
                f'argv must be a sequence of strings, not a {type(self.argv).__name__} '
                '(there is no shell)'
            )
        argv = tuple(self.argv)
        if not argv:
            raise ConfigError('argv must not be empty')
        if not all(isinstance(arg, str) for arg in argv):
            raise ConfigError(f'argv must only contain strings: {argv!r}')
        object.__setattr__(self, 'argv', argv)

    def describe(self):
        return ' '.join(self.argv)

    def __call__(self):
        """exec the program; only returns by raising"""
        program, *args = self.argv
        os.execvp(program, [self.argv0 or program, *args])


@dataclass(frozen=True)
class Callback:
    """run a function in the child and exit with what it returns"""
    func: object

    def __post_init__(self):
        if not callable(self.func):
            raise ConfigError(f'{self.func!r} is not callable')

    def describe(self):
        name = getattr(self.func, '__qualname__', None) or repr(self.func)
        return f'<callback {name}>'

    def __call__(self):
        """call func and turn the outcome into an exit code

        None (or anything else that is not an int) means 0 and an int is the
        exit code itself, whether returned or passed to sys.exit(); an
        exception is printed straight to descriptor 2 and means 1.
        """
        try:
            result = self.func()
        except SystemExit as e:
            result = e.code
            if result is not None and not isinstance(result, int):
                os.write(2, f'{result}\n'.encode(errors='replace'))
                result = 1
        except BaseException:
            os.write(2, traceback.format_exc().encode(errors='replace'))
            result = 1
        # bools count as ints, as they do for sys.exit()
        result = int(result) if isinstance(result, int) else 0
        try:
            for stream in sys.stdout, sys.stderr:
                if stream is not None:
                    stream.flush()
        except (OSError, ValueError):
            return FLUSH_FAILURE_EXIT
        return result


def describe(action):
    """the command line (or callback marker) used in messages"""
    return '<fork>' if action is None else action.describe()
