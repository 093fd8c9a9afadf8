"""
Root conftest.py to configure pytest for all test discovery.

Adds the project root to the Python path so `src.*` imports work without
an editable install.
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))
