"""
Deployment strategies.
Execution backends for the five-phase deployment pipeline.
"""

from .base import ArtifactSource, BaseDeploymentStrategy, DeploymentStrategy
from .local import LocalDeploymentStrategy, LocalExecutionService
from .polling import PollOptions, poll_until_terminal
from .remote import RemoteDeploymentStrategy, RemoteExecutionService

__all__ = [
    "ArtifactSource",
    "BaseDeploymentStrategy",
    "DeploymentStrategy",
    "LocalDeploymentStrategy",
    "LocalExecutionService",
    "PollOptions",
    "poll_until_terminal",
    "RemoteDeploymentStrategy",
    "RemoteExecutionService"
]
