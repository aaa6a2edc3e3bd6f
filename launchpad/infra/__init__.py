# -----------------------------------------------------------------------------
# INFRASTRUCTURE LAYER
# -----------------------------------------------------------------------------
# Concrete adapters behind the core's ports:
# - DockerAdapter: ContainerRuntime on the Docker SDK (with DockerProvider)
# - GitClient: SourceControl via the git CLI
# - RouteTable / HttpRouter: Router for the HTTP edge
# -----------------------------------------------------------------------------

from .docker_client import DockerAdapter, DockerAdapterError, DockerProvider, DockerProviderError
from .git_client import GitClient, GitError
from .router import HttpRouter, RouterError, RouteTable

__all__ = [
    "DockerAdapter", "DockerAdapterError", "DockerProvider", "DockerProviderError",
    "GitClient", "GitError",
    "HttpRouter", "RouteTable", "RouterError",
]
