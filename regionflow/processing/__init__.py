"""
Processing: the pipeline composer and the canonical region analysis
pipeline built on it.
"""

from .pipeline import (
    Stage,
    StageOutput,
    PipelineResult,
    Pipeline,
    as_stage,
    compose,
)

from .analysis import (
    AnalysisConfig,
    build_analysis_pipeline,
    analyze_regions,
    analyze_batch,
)

__all__ = [
    # Composer
    'Stage',
    'StageOutput',
    'PipelineResult',
    'Pipeline',
    'as_stage',
    'compose',
    # Canonical analysis
    'AnalysisConfig',
    'build_analysis_pipeline',
    'analyze_regions',
    'analyze_batch',
]
