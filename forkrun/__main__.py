import logging
import sys
from doctest import testmod
from . import (
    fd, channel, plan, action, errors, status, posix_wait,
    control, fork_exec, handle, process, inspect,
)
import forkrun

if '-v' in sys.argv[1:]:
    logging.basicConfig(level=logging.DEBUG, format='%(name)s: %(message)s')

failed = 0
print('checking modules...')
for mod in (fd, channel, plan, action, errors, status, posix_wait,
            control, fork_exec, handle, process, inspect, forkrun):
    print(f'\t{mod.__name__}...')
    failed += testmod(mod).failed
print()

sys.exit(1 if failed else 0)
