# src/ratecache/__main__.py
import sys

from ratecache.app import main

if __name__ == "__main__":
    sys.exit(main())
