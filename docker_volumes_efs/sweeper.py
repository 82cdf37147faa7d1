import threading

from easypy.resilience import resilient

from .logging import logger
from .exceptions import UnmountFailed, InventoryFailed


class ReconciliationSweep:
    """
    Periodically unmounts shares under the plugin root which no running container references.
    Catches Unmount calls that were skipped, missed or raced.
    """

    def __init__(self, config, mounter, tracker):
        self.config = config
        self.mounter = mounter
        self.tracker = tracker
        self._stopped = threading.Event()
        self._thread = None

    def sweep(self):
        """Run a single pass. Returns the paths which were unmounted."""
        logger.info("Running cleanup task")
        root = self.config.root
        if not root.exists():
            return []

        reclaimed = []
        for path in sorted(root.list()):
            if not path.is_dir():
                continue
            try:
                if not self.mounter.is_mounted(path):
                    continue
                if self.tracker.has_consumers(path):
                    continue
                self.mounter.unmount(path)
            except (UnmountFailed, InventoryFailed) as exc:
                logger.warning(f"Cleanup failed: {path.name} - {exc.render(color=False)}")
                continue
            except OSError as exc:
                logger.warning(f"Cleanup failed: {path.name} - cannot read mount table ({exc})")
                continue
            logger.info(f"Cleaned: {path.name}")
            reclaimed.append(path)
        return reclaimed

    @resilient.error(msg="cleanup task failed")
    def _safe_sweep(self):
        self.sweep()

    def _run(self):
        while not self._stopped.wait(self.config.sweep_interval):
            self._safe_sweep()

    def start(self):
        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, name="cleanup", daemon=True)
        self._thread.start()
        logger.info(f"Cleanup task scheduled every {self.config.sweep_interval}s")

    def stop(self):
        self._stopped.set()
        if self._thread:
            self._thread.join()
            self._thread = None
