"""
regionflow: composable image transforms with an explicit dtype/range
contract, and a label-then-measure region analysis pipeline.

Any supported dtype goes in; every transform declares the dtype and range it
returns; the pipeline composer threads images through stages without
letting one stage mutate another's output.

Usage:
    from regionflow.core import convert, img_as_ubyte, dtype_range
    from regionflow.transforms import gaussian, canny, threshold, fill_holes
    from regionflow.measure import label, measure_regions
    from regionflow.processing import Pipeline, Stage, analyze_regions
    from regionflow.utils import get_logger, setup_logging, load_config
"""

__version__ = "0.1.0"

# Individual subpackages should be imported explicitly:
#   from regionflow.processing import Pipeline
#   from regionflow.utils.logging import get_logger

__all__ = [
    "core",
    "transforms",
    "measure",
    "processing",
    "utils",
]
