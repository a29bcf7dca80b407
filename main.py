# main.py

import sys

from rollbatch.cli import main

if __name__ == "__main__":
    sys.exit(main())
