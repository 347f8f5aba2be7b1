#!/usr/bin/env python3
"""
Entry point for the tunnel port forwarder.
Equivalent to the installed ``tunnelfwd`` command.
"""

from tunnelfwd.main import main

if __name__ == "__main__":
    main()
