"""Pytest configuration shared by every test module.

Puts the repository root on ``sys.path`` so ``viewer`` and ``mandeltiles``
import without installation, and forces a non-interactive matplotlib backend.
"""

import os
import sys

import matplotlib

matplotlib.use("Agg")

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
