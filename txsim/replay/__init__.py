"""Transaction replay and fault diagnosis."""

from txsim.replay.pipeline import SimulationPipeline

__all__ = ["SimulationPipeline"]
