"""Build and deployment orchestration for OpenShift.

Exports the application deployer and the task launcher; everything else in
this package is a building block they compose.
"""

from shiftdeck.deploy.deployer import AppDeployer
from shiftdeck.deploy.launcher import TaskLauncher

__all__ = [
    "AppDeployer",
    "TaskLauncher",
]
