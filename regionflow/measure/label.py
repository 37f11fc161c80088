"""
Connected-component labeling.

Turns a foreground mask into a Label Array: each connected foreground region
gets a distinct positive integer, background is 0. Labels are consecutive
(1..N) and assigned in raster order of each region's first pixel, so the
same mask always produces the same labels.

Connectivity is a rank between 1 and ndim:
    2-D: 1 -> 4-neighbourhood, 2 -> 8-neighbourhood
    3-D: 1 -> 6, 2 -> 18, 3 -> 26
"""

from typing import Tuple

import numpy as np
from scipy import ndimage
from skimage import segmentation as sk_segmentation

from regionflow.core.dtypes import DtypeKind
from regionflow.core.errors import InvalidParameterError, UnsupportedDtypeError
from regionflow.transforms.base import OutputContract, transform
from regionflow.transforms.morphology import as_foreground, connectivity_structure
from regionflow.utils.logging import get_logger

logger = get_logger(__name__)

LABEL_DTYPE = np.int32

LABEL_OUTPUT = OutputContract(
    DtypeKind.INT, LABEL_DTYPE, (0, np.iinfo(LABEL_DTYPE).max), "labels, 0 = background",
)

_NEIGHBOR_COUNTS = {
    2: {4: 1, 8: 2},
    3: {6: 1, 18: 2, 26: 3},
}


def connectivity_from_neighbors(neighbors: int, ndim: int = 2) -> int:
    """
    Translate a neighbour count (4/8 in 2-D, 6/18/26 in 3-D) to a rank.

    Raises:
        InvalidParameterError: For counts that do not exist in ndim dimensions
    """
    table = _NEIGHBOR_COUNTS.get(ndim)
    if table is None or neighbors not in table:
        valid = sorted(table) if table else []
        raise InvalidParameterError('neighbors', neighbors, f"expected one of {valid} for {ndim}-D")
    return table[neighbors]


def _raster_order(labels: np.ndarray, num: int) -> np.ndarray:
    flat = labels.ravel()
    values, first = np.unique(flat, return_index=True)
    foreground = values > 0
    values, first = values[foreground], first[foreground]
    order = values[np.argsort(first, kind='stable')]
    if np.array_equal(order, np.arange(1, num + 1)):
        return labels
    lut = np.zeros(num + 1, dtype=labels.dtype)
    lut[order] = np.arange(1, len(order) + 1, dtype=labels.dtype)
    return lut[labels]


@transform(output=LABEL_OUTPUT, max_ndim=3)
def label(mask: np.ndarray, connectivity=None) -> np.ndarray:
    """
    Label connected foreground regions.

    Args:
        mask: Foreground mask of any dtype; bool is used as-is, other dtypes
            count nonzero samples as foreground. Must be single-channel 2-D
            or 3-D.
        connectivity: Rank 1..ndim (see module docstring). None = full
            connectivity (8 in 2-D, 26 in 3-D).

    Returns:
        int32 Label Array. An all-background mask gives all zeros.
    """
    structure = connectivity_structure(mask.ndim, connectivity)
    foreground = as_foreground(mask)
    labels, num = ndimage.label(foreground, structure=structure, output=LABEL_DTYPE)
    if num:
        labels = _raster_order(labels, num)
    logger.debug("label: %d regions (connectivity=%s)", num, connectivity)
    return labels


def count_regions(labels: np.ndarray) -> int:
    """Number of distinct positive labels."""
    values = np.unique(labels)
    return int(np.count_nonzero(values > 0))


def relabel_sequential(labels: np.ndarray) -> Tuple[np.ndarray, int]:
    """
    Map the positive labels of an array onto 1..N, keeping their order.

    Args:
        labels: Integer (or bool) label array with non-negative values

    Returns:
        (relabeled array, N)

    Raises:
        UnsupportedDtypeError: For float label arrays
        InvalidParameterError: For negative labels
    """
    labels = np.asarray(labels)
    if labels.dtype == np.bool_:
        labels = labels.astype(LABEL_DTYPE)
    if labels.dtype.kind not in 'ui':
        raise UnsupportedDtypeError(labels.dtype, "label arrays must be integer or bool")
    if labels.size and labels.min() < 0:
        raise InvalidParameterError('labels', int(labels.min()), "labels must be non-negative")
    relabeled, _, _ = sk_segmentation.relabel_sequential(labels)
    num = int(relabeled.max()) if relabeled.size else 0
    return relabeled, num
