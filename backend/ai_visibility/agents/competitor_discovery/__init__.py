from .pipeline import CompetitorDiscoveryPipeline, build_pipeline
from .state import DiscoveryState, PipelineStage

__all__ = [
    "CompetitorDiscoveryPipeline",
    "DiscoveryState",
    "PipelineStage",
    "build_pipeline",
]
