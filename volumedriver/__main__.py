import sys
from .local import run_plugin

if __name__ == '__main__':
    sys.exit(run_plugin())
