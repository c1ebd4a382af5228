#!/usr/bin/env python3
"""
Entry point for the drush-reload CLI command.
This allows the package to be run as: python -m drush_reload
"""

import sys

from .reload import main

if __name__ == '__main__':
    sys.exit(main())
