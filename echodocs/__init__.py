"""EchoDocs: generate repository documentation from source and publish it to GitHub."""

from .config import SynthesisOptions, load_config
from .errors import ErrorKind, PipelineError
from .models import Credentials, OutcomeStatus, PipelineOutcome, RepositoryRef
from .orchestrator import PipelineOrchestrator, synthesize

__version__ = "1.0.0"

__all__ = [
    "Credentials",
    "ErrorKind",
    "OutcomeStatus",
    "PipelineError",
    "PipelineOrchestrator",
    "PipelineOutcome",
    "RepositoryRef",
    "SynthesisOptions",
    "__version__",
    "load_config",
    "synthesize",
]
