"""
Example script running the 3D-3D registration workflow.

Usage:
    python scripts/run_registration.py -s sfm.ply -t lidar.laz -o sfm_aligned.ply \
        --source-measurement 2.0 --target-measurement 6.0 --method gicp
"""

import sys
from pathlib import Path

# Add the src to the path to import modules
sys.path.append(str(Path(__file__).parent.parent / "src"))

from pointcloud_registration.cli import main


if __name__ == "__main__":
    sys.exit(main())
