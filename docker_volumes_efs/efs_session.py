from time import sleep
from pprint import pformat

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from easypy.bunch import Bunch

from .logging import logger
from .exceptions import ProvisionFailed, ProvisionTimeout


AVAILABLE = "available"
FAILED_STATES = {"error", "deleting", "deleted"}


class EfsSession:
    """
    Communication with the EFS API.
    Ensures that a file system (looked up by its creation token) and a mount target exist,
    waiting for both to become available.
    """

    def __init__(self, config, region, client=None):
        self.config = config
        self.region = region
        self.client = client or boto3.client(
            "efs", region_name=region, config=BotoConfig(retries=dict(mode="standard", max_attempts=5))
        )

    def _call(self, operation, tolerate=(), **params):
        """
        Invoke an EFS API operation and return its response as a Bunch.
        Client errors with a code listed in `tolerate` yield None; any other failure raises ProvisionFailed.
        """
        logger.debug(f">>> [{operation}]")
        for line in pformat(params).splitlines():
            logger.debug(f"    {line}")
        try:
            ret = getattr(self.client, operation)(**params)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in tolerate:
                logger.info(f"<<< [{operation}] tolerated {code}")
                return None
            raise ProvisionFailed(reason=f"{operation}: {exc}", code=code) from None
        except BotoCoreError as exc:
            raise ProvisionFailed(reason=f"{operation}: {exc}") from None
        ret = Bunch.from_dict({k: v for k, v in ret.items() if k != "ResponseMetadata"})
        logger.debug(f"<<< [{operation}]")
        for line in pformat(ret).splitlines():
            logger.debug(f"    {line}")
        return ret

    # ----------------------------
    # File systems
    def get_file_system(self, share_name):
        """Get file system by creation token. None means it has to be created."""
        if file_systems := self._call("describe_file_systems", CreationToken=share_name).FileSystems:
            return file_systems[0]

    def create_file_system(self, share_name):
        """
        Create a file system for `share_name`.
        Returns None if another caller created it concurrently with the same creation token.
        """
        return self._call(
            "create_file_system",
            tolerate=("FileSystemAlreadyExists",),
            CreationToken=share_name,
            Tags=[dict(Key="Name", Value=share_name)],
        )

    def wait_for_file_system(self, share_name):
        return self._wait_available("File system", share_name, lambda: self.get_file_system(share_name))

    # ----------------------------
    # Mount targets
    def get_mount_targets(self, file_system_id):
        return self._call("describe_mount_targets", FileSystemId=file_system_id).MountTargets

    def create_mount_target(self, file_system_id, subnet_id):
        """
        Create a mount target in `subnet_id`, assigning the configured security group if any
        (otherwise EFS defers to the VPC default group).
        Returns None if a mount target already exists in that availability zone.
        """
        params = dict(FileSystemId=file_system_id, SubnetId=subnet_id)
        if self.config.security_group:
            params["SecurityGroups"] = [self.config.security_group]
        return self._call("create_mount_target", tolerate=("MountTargetConflict",), **params)

    def wait_for_mount_target(self, file_system_id, mount_target_id):
        def describe():
            for target in self.get_mount_targets(file_system_id):
                if target.MountTargetId == mount_target_id:
                    return target

        return self._wait_available("Mount target", mount_target_id, describe)

    @staticmethod
    def pick_mount_target(targets, subnet_id, state=None):
        """Pick a mount target (optionally in a given state), preferring the one in our own subnet."""
        candidates = [t for t in targets if state is None or t.LifeCycleState == state]
        for target in candidates:
            if target.SubnetId == subnet_id:
                return target
        return candidates[0] if candidates else None

    # ----------------------------
    def _wait_available(self, resource, resource_id, describe):
        attempts = self.config.poll_attempts
        for attempt in range(1, attempts + 1):
            item = describe()
            state = item.LifeCycleState if item else None
            if state == AVAILABLE:
                logger.info(f"{resource} {resource_id} is available")
                return item
            if state in FAILED_STATES:
                raise ProvisionFailed(reason=f"{resource} {resource_id} is in terminal state {state!r}")
            logger.info(f"{resource} {resource_id} is {state or 'not visible yet'} ({attempt}/{attempts})")
            if attempt < attempts:
                sleep(self.config.poll_interval)
        else:
            raise ProvisionTimeout(resource=resource, resource_id=resource_id, attempts=attempts)

    def ensure_mount_endpoint(self, share_name, subnet_id):
        """
        Make sure a file system for `share_name` and a mount target for it exist and are available.
        Returns the IP address to mount from.
        """
        created = False
        if not (file_system := self.get_file_system(share_name)):
            if file_system := self.create_file_system(share_name):
                created = True
                logger.info(f"Created file system {file_system.FileSystemId} for {share_name}")
            else:
                file_system = self.get_file_system(share_name)
            if not file_system:
                raise ProvisionFailed(reason=f"file system {share_name!r} vanished right after creation")

        if file_system.LifeCycleState != AVAILABLE:
            file_system = self.wait_for_file_system(share_name)
        file_system_id = file_system.FileSystemId

        targets = [] if created else self.get_mount_targets(file_system_id)
        if target := self.pick_mount_target(targets, subnet_id, state=AVAILABLE):
            logger.info(f"Using existing mount target {target.MountTargetId} of {share_name}: {target.IpAddress}")
            return target.IpAddress

        if not (target := self.pick_mount_target(targets, subnet_id)):
            if not (target := self.create_mount_target(file_system_id, subnet_id)):
                target = self.pick_mount_target(self.get_mount_targets(file_system_id), subnet_id)
            if not target:
                raise ProvisionFailed(reason=f"no mount target could be created for {file_system_id} in {subnet_id}")
            logger.info(f"Created mount target {target.MountTargetId} of {share_name} in {subnet_id}")

        target = self.wait_for_mount_target(file_system_id, target.MountTargetId)
        return target.IpAddress
