"""Test package for the behavioral fraud review engine.

- Unit tests for the scoring, detection and review components
- Integration tests for the service facade over a real database
"""

import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
