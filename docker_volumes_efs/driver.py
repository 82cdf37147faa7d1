"""
Volume lifecycle as seen by the Docker daemon.

    Create  -> nothing to do, provisioning happens on first Mount
    Mount   -> ensure file system + mount target, attach under the plugin root
    Unmount -> detach, unless another running container still uses the mountpoint
    Remove  -> nothing to do, file systems are never deleted by the plugin

No state is kept between calls: "is it mounted" comes from the host mount table and
"is it used" from the Docker inventory, both re-read on every decision.
"""
from easypy.bunch import Bunch

from .logging import logger
from .utils import validate_volume_name


class EfsDriver:

    SCOPE = "local"

    def __init__(self, config, placement, efs_session, mounter, tracker):
        self.config = config
        self.placement = placement
        self.efs_session = efs_session
        self.mounter = mounter
        self.tracker = tracker

    def path(self, name):
        return self.config.root[validate_volume_name(name)]

    def create(self, name):
        validate_volume_name(name)
        logger.info(f"Create: {name} (deferred to mount)")

    def remove(self, name):
        validate_volume_name(name)
        logger.info(f"Remove: {name} (file system is kept)")

    def mount(self, name):
        path = self.path(name)
        if self.mounter.is_mounted(path):
            logger.info(f"Existing: {name} at {path}")
            return path

        endpoint = self.efs_session.ensure_mount_endpoint(name, self.placement.subnet_id)
        self.mounter.mount(endpoint, path)
        logger.info(f"Mounted: {name} from {endpoint} at {path}")
        return path

    def unmount(self, name):
        path = self.path(name)
        if self.tracker.has_consumers(path):
            logger.info(f"Unmount: {name} still in use, keeping {path}")
            return
        self.mounter.unmount(path)
        logger.info(f"Unmounted: {name}")

    def get(self, name):
        path = self.path(name)
        status = Bunch(mounted=self.mounter.is_mounted(path))
        return Bunch(name=name, mountpoint=path, status=status)

    def list(self):
        root = self.config.root
        if not root.exists():
            return []
        return [Bunch(name=p.name, mountpoint=p) for p in sorted(root.list()) if p.is_dir()]
