"""
Error types raised by the LN-LNP pipeline.

Every stage validates its own inputs and fails fast with one of these
instead of silently coercing bad values.
"""

from typing import Optional


class LNLNPError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(LNLNPError, ValueError):
    """Invalid filter spec, non-positive rate, or kernel longer than a trial."""


class DistributionError(LNLNPError, ValueError):
    """Negative spread or a malformed rate/probability draw."""


class DimensionError(LNLNPError, ValueError):
    """Array shapes disagree between two pipeline stages."""


class PipelineError(LNLNPError):
    """
    A single neuron instance failed somewhere in the pipeline.

    Wraps the underlying error with the stage, neuron type and instance
    index so the failing neuron can be identified from the message alone.
    """

    def __init__(
        self,
        stage: str,
        neuron_type: str,
        instance_index: int,
        cause: Optional[BaseException] = None
    ):
        self.stage = stage
        self.neuron_type = neuron_type
        self.instance_index = instance_index
        self.cause = cause
        message = (
            f"Stage '{stage}' failed for neuron type '{neuron_type}', "
            f"instance {instance_index}"
        )
        if cause is not None:
            message += f": {type(cause).__name__}: {cause}"
        super().__init__(message)
