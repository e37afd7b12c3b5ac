"""ShiftDeck - Build and deploy application artifacts on OpenShift.

ShiftDeck turns a request to deploy an application artifact into running
workloads on an OpenShift cluster. Artifacts are built into images on the
cluster first, and the workloads roll out once the build completes.

Main features:
- Maven, file and pre-built image resources
- Git, Dockerfile and binary-input build strategies
- Reuse of earlier builds of identical artifacts
- Indexed deployments with one workload per instance
- One-shot task launches
"""

from shiftdeck.config.loader import ConfigLoader
from shiftdeck.lib.errors import (
    ConfigError,
    DeploymentError,
    InvalidRequestError,
    ShiftDeckError,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigLoader",
    "ConfigError",
    "DeploymentError",
    "InvalidRequestError",
    "ShiftDeckError",
]
