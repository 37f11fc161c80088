"""
Binary morphology transforms for cleaning foreground masks.

Any dtype is accepted; non-bool inputs are read as "nonzero is foreground".
Every function returns a fresh bool array of the input shape.

Usage:
    from regionflow.transforms.morphology import fill_holes, remove_small_objects

    mask = fill_holes(edges)
    mask = remove_small_objects(mask, min_size=50)
"""

import numpy as np
from scipy import ndimage
from skimage import morphology as sk_morphology

from regionflow.core.dtypes import DtypeKind
from regionflow.transforms.base import OutputContract, check_parameter, transform

MASK_OUTPUT = OutputContract(DtypeKind.BOOL, np.bool_, (0, 1), "foreground mask")


def as_foreground(mask: np.ndarray) -> np.ndarray:
    """Boolean view of a mask: bool as-is, otherwise nonzero samples."""
    if mask.dtype == np.bool_:
        return mask
    return mask != 0


def connectivity_structure(ndim: int, connectivity=None) -> np.ndarray:
    """
    Structuring element for a connectivity rank.

    Args:
        ndim: Number of spatial dimensions
        connectivity: 1 (faces) .. ndim (faces, edges and vertices).
            None means full connectivity (ndim).

    Returns:
        bool array of shape (3,) * ndim
    """
    if connectivity is None:
        connectivity = ndim
    if isinstance(connectivity, bool) or not isinstance(connectivity, (int, np.integer)):
        check_parameter('connectivity', connectivity, choices=range(1, ndim + 1))
    check_parameter('connectivity', connectivity, minimum=1, maximum=ndim)
    return ndimage.generate_binary_structure(ndim, int(connectivity))


def _footprint(ndim: int, radius: int) -> np.ndarray:
    if ndim == 2:
        return sk_morphology.disk(radius).astype(bool)
    return sk_morphology.ball(radius).astype(bool)


@transform(output=MASK_OUTPUT, max_ndim=3)
def fill_holes(mask: np.ndarray, max_hole_area_fraction: float = 1.0) -> np.ndarray:
    """
    Fill internal holes in a binary mask.

    Preserves large holes (e.g. a ring-shaped object's lumen) by only filling
    holes smaller than max_hole_area_fraction of the total mask area.

    Args:
        mask: Binary mask (any dtype, nonzero = foreground)
        max_hole_area_fraction: Maximum hole size to fill as fraction of mask
            area. 1.0 (default) fills every hole regardless of size.

    Returns:
        bool mask with internal holes filled
    """
    check_parameter('max_hole_area_fraction', max_hole_area_fraction, minimum=0.0, maximum=1.0)
    mask_bool = as_foreground(mask)
    if not mask_bool.any():
        return np.zeros(mask.shape, dtype=bool)

    filled = ndimage.binary_fill_holes(mask_bool)
    holes = filled & ~mask_bool
    if not holes.any() or max_hole_area_fraction >= 1.0:
        return filled

    max_hole_area = mask_bool.sum() * max_hole_area_fraction
    labeled_holes, num_holes = ndimage.label(holes)
    hole_sizes = np.bincount(labeled_holes.ravel(), minlength=num_holes + 1)
    preserve = hole_sizes > max_hole_area
    preserve[0] = False
    return filled & ~preserve[labeled_holes]


@transform(output=MASK_OUTPUT, max_ndim=3)
def remove_small_objects(mask: np.ndarray, min_size: int = 64, connectivity=None) -> np.ndarray:
    """
    Drop connected components with fewer than min_size pixels.

    Args:
        mask: Binary mask (any dtype, nonzero = foreground)
        min_size: Smallest component size kept, in pixels (>= 0)
        connectivity: 1..ndim, None = full

    Returns:
        bool mask
    """
    check_parameter('min_size', min_size, minimum=0)
    mask_bool = as_foreground(mask)
    structure = connectivity_structure(mask.ndim, connectivity)
    if min_size == 0 or not mask_bool.any():
        return mask_bool.copy()

    labeled, num = ndimage.label(mask_bool, structure=structure)
    sizes = np.bincount(labeled.ravel(), minlength=num + 1)
    keep = sizes >= min_size
    keep[0] = False
    return keep[labeled]


@transform(output=MASK_OUTPUT, max_ndim=3)
def keep_largest_component(mask: np.ndarray, connectivity=None) -> np.ndarray:
    """
    Keep only the largest connected component (removes fragments).

    Ties go to the component encountered first in raster order.
    """
    mask_bool = as_foreground(mask)
    structure = connectivity_structure(mask.ndim, connectivity)
    if not mask_bool.any():
        return np.zeros(mask.shape, dtype=bool)

    labeled, num = ndimage.label(mask_bool, structure=structure)
    if num <= 1:
        return mask_bool.copy()
    sizes = np.bincount(labeled.ravel())
    sizes[0] = 0
    return labeled == int(np.argmax(sizes))


@transform(output=MASK_OUTPUT, max_ndim=3)
def binary_closing(mask: np.ndarray, radius: int = 1) -> np.ndarray:
    """
    Morphological closing with a disk (2-D) or ball (3-D) of the given radius.

    The mask is padded with background so objects touching the border are
    closed the same way as interior ones.
    """
    check_parameter('radius', radius, minimum=0)
    mask_bool = as_foreground(mask)
    radius = int(radius)
    if radius == 0:
        return mask_bool.copy()
    padded = np.pad(mask_bool, radius, mode='constant', constant_values=False)
    closed = ndimage.binary_closing(padded, structure=_footprint(mask.ndim, radius))
    crop = tuple(slice(radius, -radius) for _ in range(mask.ndim))
    return closed[crop]


@transform(output=MASK_OUTPUT, max_ndim=3)
def binary_opening(mask: np.ndarray, radius: int = 1) -> np.ndarray:
    """
    Morphological opening with a disk (2-D) or ball (3-D) of the given radius.

    The mask is edge-padded so objects touching the border are not eroded by
    the implicit background outside the image.
    """
    check_parameter('radius', radius, minimum=0)
    mask_bool = as_foreground(mask)
    radius = int(radius)
    if radius == 0:
        return mask_bool.copy()
    padded = np.pad(mask_bool, radius, mode='edge')
    opened = ndimage.binary_opening(padded, structure=_footprint(mask.ndim, radius))
    crop = tuple(slice(radius, -radius) for _ in range(mask.ndim))
    return opened[crop]
