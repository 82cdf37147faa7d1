import sys
from pathlib import Path
from typing import List, Optional
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from easypy.bunch import Bunch

ROOT = Path(__file__).resolve().parents[1]
# Extend python import path to get docker_volumes_efs package from here
sys.path += [ROOT.as_posix()]

from docker_volumes_efs.configuration import Config
from docker_volumes_efs.efs_session import EfsSession


# ----------------------------------------------------------------------------------------------------------------------
# Helper classes
# ----------------------------------------------------------------------------------------------------------------------


class FakeEfsClient:
    """
    Simulate the boto3 EFS client.
    Newly created resources report 'creating' for `creating_polls` describe calls and 'available' afterwards.
    Every API method is a MagicMock, so 'assert_called', 'call_count' etc. are available.
    """

    def __init__(self, creating_polls: int = 0, file_systems: Optional[List[dict]] = None,
                 mount_targets: Optional[List[dict]] = None):
        self.creating_polls = creating_polls
        self.file_systems = list(file_systems or [])
        self.mount_targets = list(mount_targets or [])
        self._pending = {}  # resource id -> remaining 'creating' describes

        self.describe_file_systems = MagicMock(side_effect=self._describe_file_systems)
        self.create_file_system = MagicMock(side_effect=self._create_file_system)
        self.describe_mount_targets = MagicMock(side_effect=self._describe_mount_targets)
        self.create_mount_target = MagicMock(side_effect=self._create_mount_target)

    def _tick(self, item, id_key):
        remaining = self._pending.get(item[id_key], 0)
        if remaining:
            self._pending[item[id_key]] = remaining - 1
        else:
            item["LifeCycleState"] = "available"
        return dict(item)

    def _describe_file_systems(self, CreationToken):
        found = [self._tick(fs, "FileSystemId") for fs in self.file_systems if fs["CreationToken"] == CreationToken]
        return dict(FileSystems=found, ResponseMetadata=dict(HTTPStatusCode=200))

    def _create_file_system(self, CreationToken, Tags=None):
        fs = dict(
            FileSystemId=f"fs-{len(self.file_systems) + 1:04d}",
            CreationToken=CreationToken,
            LifeCycleState="creating",
        )
        self.file_systems.append(fs)
        self._pending[fs["FileSystemId"]] = self.creating_polls
        return dict(fs, ResponseMetadata=dict(HTTPStatusCode=201))

    def _describe_mount_targets(self, FileSystemId):
        found = [self._tick(mt, "MountTargetId") for mt in self.mount_targets if mt["FileSystemId"] == FileSystemId]
        return dict(MountTargets=found)

    def _create_mount_target(self, FileSystemId, SubnetId, SecurityGroups=None):
        mt = dict(
            MountTargetId=f"fsmt-{len(self.mount_targets) + 1:04d}",
            FileSystemId=FileSystemId,
            SubnetId=SubnetId,
            LifeCycleState="creating",
            IpAddress=f"10.0.0.{len(self.mount_targets) + 10}",
        )
        self.mount_targets.append(mt)
        self._pending[mt["MountTargetId"]] = self.creating_polls
        return dict(mt)


def client_error(code, operation="CreateFileSystem"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeContainer:
    """Simulate docker.models.containers.Container"""

    def __init__(self, name, mounts=(), binds=()):
        self.name = name
        self.attrs = dict(
            Name=f"/{name}",
            Mounts=[dict(Type="volume", Source=src, Destination="/data") for src in mounts],
            HostConfig=dict(Binds=list(binds) or None),
        )


# ----------------------------------------------------------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------------------------------------------------------


@pytest.fixture
def config(tmp_path):
    """Configuration isolated from the process environment, rooted in a temporary directory"""
    root = tmp_path / "efs"
    root.mkdir()
    return Config(env=dict(
        DOCKER_VOLUMES_EFS_ROOT=str(root),
        DOCKER_VOLUMES_EFS_SOCKET_DIR=str(tmp_path / "plugins"),
        DOCKER_VOLUMES_EFS_SUBNET="subnet-aaa",
        DOCKER_VOLUMES_EFS_REGION="us-east-1",
        DOCKER_VOLUMES_EFS_POLL_INTERVAL="0",
        DOCKER_VOLUMES_EFS_POLL_ATTEMPTS="5",
        DOCKER_VOLUMES_EFS_UNMOUNT_ATTEMPTS="3",
    ))


@pytest.fixture
def placement():
    return Bunch(region="us-east-1", subnet_id="subnet-aaa", instance_id=None)


@pytest.fixture
def fake_efs():
    """FakeEfsClient factory"""

    def __wrapped(**kwargs) -> FakeEfsClient:
        return FakeEfsClient(**kwargs)

    return __wrapped


@pytest.fixture
def efs_session(config):
    """EfsSession factory bound to a FakeEfsClient"""

    def __wrapped(client: FakeEfsClient) -> EfsSession:
        return EfsSession(config, region="us-east-1", client=client)

    return __wrapped


@pytest.fixture
def docker_client():
    """Factory for a fake docker client listing the provided containers"""

    def __wrapped(*containers: FakeContainer) -> MagicMock:
        client = MagicMock()
        client.containers.list.return_value = list(containers)
        return client

    return __wrapped
