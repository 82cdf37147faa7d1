import os

from plumbum import local
from plumbum.typed_env import TypedEnv

from .utils import normalize_mount_options


DEFAULT_MOUNT_OPTIONS = "nfsvers=4.1,port=2049,rsize=1048576,wsize=1048576,hard,timeo=600,retrans=2,noresvport"


class Config(TypedEnv):
    class Path(TypedEnv.Str):
        convert = staticmethod(local.path)

    plugin_name = TypedEnv.Str("DOCKER_VOLUMES_EFS_PLUGIN_NAME", default="efs")
    root = Path("DOCKER_VOLUMES_EFS_ROOT", default=local.path("/var/lib/docker-volumes/efs"))
    socket_dir = Path("DOCKER_VOLUMES_EFS_SOCKET_DIR", default=local.path("/run/docker/plugins"))

    security_group = TypedEnv.Str("DOCKER_VOLUMES_EFS_SECURITY", default="")
    subnet = TypedEnv.Str("DOCKER_VOLUMES_EFS_SUBNET", default="")
    region = TypedEnv.Str(["DOCKER_VOLUMES_EFS_REGION", "AWS_REGION"], default="")
    metadata_url = TypedEnv.Str("DOCKER_VOLUMES_EFS_METADATA_URL", default="http://169.254.169.254/latest")
    docker_host = TypedEnv.Str(["DOCKER_VOLUMES_EFS_DOCKER", "DOCKER_HOST"], default="unix:///var/run/docker.sock")

    verbose = TypedEnv.Bool("DOCKER_VOLUMES_EFS_VERBOSE", default=False)
    _log_level = TypedEnv.Str("DOCKER_VOLUMES_EFS_LOG_LEVEL", default="info")
    _mount_options = TypedEnv.Str("DOCKER_VOLUMES_EFS_MOUNT_OPTIONS", default=DEFAULT_MOUNT_OPTIONS)

    poll_interval = TypedEnv.Float("DOCKER_VOLUMES_EFS_POLL_INTERVAL", default=10.0)
    poll_attempts = TypedEnv.Int("DOCKER_VOLUMES_EFS_POLL_ATTEMPTS", default=60)
    sweep_interval = TypedEnv.Float("DOCKER_VOLUMES_EFS_SWEEP_INTERVAL", default=15.0)
    unmount_attempts = TypedEnv.Int("DOCKER_VOLUMES_EFS_UNMOUNT_ATTEMPTS", default=10)
    worker_threads = TypedEnv.Int("DOCKER_VOLUMES_EFS_WORKER_THREADS", default=10)

    @classmethod
    def snapshot(cls, **overrides):
        """
        Build a configuration from a frozen copy of the current environment.
        `overrides` maps variable names to values and takes precedence (used by CLI flags);
        None values are ignored.
        """
        env = dict(os.environ)
        env.update({k: str(v) for k, v in overrides.items() if v is not None})
        return cls(env=env)

    @property
    def log_level(self):
        return "debug" if self.verbose else self._log_level

    @property
    def mount_options(self):
        return normalize_mount_options(self._mount_options)

    @property
    def socket_path(self):
        return self.socket_dir[f"{self.plugin_name}.sock"]

    def as_dict(self):
        return dict(
            plugin_name=self.plugin_name,
            root=str(self.root),
            socket=str(self.socket_path),
            security_group=self.security_group,
            subnet=self.subnet,
            region=self.region,
            docker_host=self.docker_host,
            log_level=self.log_level,
            mount_options=",".join(self.mount_options),
            poll_interval=self.poll_interval,
            poll_attempts=self.poll_attempts,
            sweep_interval=self.sweep_interval,
            unmount_attempts=self.unmount_attempts,
            worker_threads=self.worker_threads,
        )
