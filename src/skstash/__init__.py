"""
SKStash — content-addressed encrypted backup store.

Every file is known by the hash of what it holds.
Encrypt it. Compress it. Verify both ends agree. Then remember it.

A smilinTux Open Source Project.
"""

import os

__version__ = "0.1.0"
__author__ = "smilinTux"

STASH_HOME = os.environ.get("SKSTASH_HOME", "~/.skstash")
