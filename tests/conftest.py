import sys
from pathlib import Path


# Ensure the package and shared fakes are importable without installation when running tests locally
root = Path(__file__).resolve().parents[1]
for path in (root / "src", root / "tests"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))
