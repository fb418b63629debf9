# -*- coding: utf-8 -*-

"""
Chạy CLI bằng: python -m mstlookup
"""

import sys

from mstlookup.cli import main

sys.exit(main())
