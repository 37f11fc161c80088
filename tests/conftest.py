"""
Pytest fixtures for regionflow tests.

Provides synthetic images and masks with predictable regions.
"""

import sys
import shutil
import tempfile
from pathlib import Path

import numpy as np
import pytest

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


def make_disk_mask(shape=(128, 128), center=(64, 64), radius=25):
    """Boolean mask of a filled disk."""
    yy, xx = np.ogrid[:shape[0], :shape[1]]
    return (yy - center[0]) ** 2 + (xx - center[1]) ** 2 <= radius ** 2


@pytest.fixture
def disk_radius():
    return 25


@pytest.fixture
def disk_mask(disk_radius):
    """
    128x128 boolean mask with one filled disk in the center.

    Returns:
        np.ndarray: bool array
    """
    return make_disk_mask(radius=disk_radius)


@pytest.fixture
def disk_image(disk_mask):
    """
    uint8 image of the disk: 200 inside, 0 outside.

    Returns:
        np.ndarray: 128x128 uint8 array
    """
    image = np.zeros(disk_mask.shape, dtype=np.uint8)
    image[disk_mask] = 200
    return image


@pytest.fixture
def disk_image_uint16(disk_mask):
    """The disk image at 16 bits (200 * 257 inside)."""
    image = np.zeros(disk_mask.shape, dtype=np.uint16)
    image[disk_mask] = 200 * 257
    return image


@pytest.fixture
def disk_image_rgb(disk_mask):
    """RGB uint8 version of the disk (reddish disk on black)."""
    image = np.zeros(disk_mask.shape + (3,), dtype=np.uint8)
    image[disk_mask] = [220, 180, 160]
    return image


@pytest.fixture
def two_block_mask():
    """
    20x20 mask with two disjoint 3x3 blocks.

    Blocks occupy rows/cols [2:5, 2:5] and [10:13, 12:15].

    Returns:
        np.ndarray: bool array
    """
    mask = np.zeros((20, 20), dtype=bool)
    mask[2:5, 2:5] = True
    mask[10:13, 12:15] = True
    return mask


@pytest.fixture
def empty_mask():
    """
    All-background mask for edge cases.

    Returns:
        np.ndarray: 32x40 boolean array of all False
    """
    return np.zeros((32, 40), dtype=bool)


@pytest.fixture
def ramp_float():
    """64x64 float64 horizontal ramp over [0, 1]."""
    return np.tile(np.linspace(0.0, 1.0, 64), (64, 1))


@pytest.fixture
def temp_output_dir():
    """
    Temporary directory for test outputs.

    Yields:
        Path: Path to temporary directory
    """
    temp_dir = tempfile.mkdtemp(prefix="regionflow_test_")
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)
