#!/usr/bin/env python3
"""
Entry point for configuring a running DevOps stack.

Usage:
    ./configure_stack.py [--dry-run] [--verbose] [--skip-jenkins] ...

See ``--help`` for all options.
"""

from devstack_setup.cli_handler import main

if __name__ == "__main__":
    main()
