# src/netspamlock/__main__.py
import sys
from netspamlock.cli import main

if __name__ == "__main__":
    sys.exit(main())
