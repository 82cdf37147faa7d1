import os

from plumbum import cmd, local, ProcessExecutionError

from .logging import logger
from .utils import get_mount
from .exceptions import MountFailed, UnmountFailed


class LocalMounter:
    """Attaches EFS endpoints to local directories over NFSv4."""

    def __init__(self, config):
        self.config = config

    def is_mounted(self, path) -> bool:
        return get_mount(path) is not None

    def mount(self, endpoint, path):
        path = local.path(path)
        if found_mount := get_mount(path):
            logger.info(f"{path} is already mounted: {found_mount.device}")
            return

        # a leftover directory from a failed attempt is fine, mount will reuse it
        path.mkdir()
        os.chmod(path, 0o755)

        src = f"{endpoint}:/"
        flags = self.config.mount_options
        args = ["-t", "nfs4"]
        if flags:
            args += ["-o", ",".join(flags)]
        if self.config.verbose:
            args.append("-v")
        args += [src, str(path)]
        try:
            cmd.mount[args] & logger.pipe_info("mount >>")
        except ProcessExecutionError as exc:
            raise MountFailed(detail=exc.stderr, src=src, tgt=path, mount_options=flags) from None
        logger.info(f"mounted: {src} at {path} flags: {flags}")

    def unmount(self, path):
        path = local.path(path)
        if not path.exists():
            logger.info(f"{path} does not exist - no need to unmount")
            return

        # make sure we're really unmounted before we delete anything
        for i in range(self.config.unmount_attempts):
            if not self.is_mounted(path):
                logger.info(f"{path} is not mounted")
                break
            try:
                cmd.umount(str(path))
            except ProcessExecutionError as exc:
                if "not mounted" in exc.stderr:
                    logger.info(f"umount failed - {path} is not mounted (race?)")
                    break
                raise UnmountFailed(detail=exc.stderr, tgt=path) from None
        else:
            if self.is_mounted(path):
                raise UnmountFailed(
                    detail=f"stuck in unmount loop too many times ({self.config.unmount_attempts})", tgt=path
                )

        try:
            os.rmdir(path)  # don't use plumbum's .delete to avoid the dangerous rmtree
        except OSError as exc:
            raise UnmountFailed(detail=str(exc), tgt=path) from None
        logger.info(f"{path} removed successfully")
