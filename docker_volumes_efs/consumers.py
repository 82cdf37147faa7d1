import docker
from docker.errors import DockerException
from requests.exceptions import RequestException

from .logging import logger
from .exceptions import InventoryFailed


def bind_sources(attrs):
    """
    Host paths a container declares as the source of its mounts: `Mounts[].Source` of the
    inspected container plus the host side of `HostConfig.Binds` ("src:dst[:opts]").
    """
    sources = {m.get("Source") for m in attrs.get("Mounts") or ()}
    for bind in (attrs.get("HostConfig") or {}).get("Binds") or ():
        src, _, _ = bind.partition(":")
        sources.add(src)
    sources.discard(None)
    sources.discard("")
    return sources


class ConsumerTracker:
    """
    Answers whether a local path is used by a running container.
    The Docker inventory is queried on every call and never cached.
    """

    def __init__(self, config, client=None):
        self.config = config
        self._client = client

    @property
    def client(self):
        # construction negotiates the API version with the daemon and may raise
        if self._client is None:
            self._client = docker.DockerClient(base_url=self.config.docker_host)
        return self._client

    def _running_containers(self):
        try:
            return self.client.containers.list(ignore_removed=True)
        except (DockerException, RequestException) as exc:
            raise InventoryFailed(docker_host=self.config.docker_host, detail=str(exc)) from None

    def ping(self):
        try:
            self.client.ping()
        except (DockerException, RequestException) as exc:
            raise InventoryFailed(docker_host=self.config.docker_host, detail=str(exc)) from None

    def consumers(self, path):
        """Names of running containers which mount `path` (exact match)."""
        path = str(path)
        return [c.name for c in self._running_containers() if path in bind_sources(c.attrs)]

    def has_consumers(self, path) -> bool:
        if names := self.consumers(path):
            logger.info(f"{path} is used by: {', '.join(sorted(names))}")
            return True
        return False
