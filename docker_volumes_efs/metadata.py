"""
Discovery of where this host lives in AWS (region, instance and subnet).
New EFS mount targets are created in the host's own subnet, and all AWS clients are bound to its region.
"""
import requests
from requests.exceptions import ConnectionError, Timeout, RequestException

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from easypy.bunch import Bunch
from easypy.resilience import retrying

from .logging import logger
from .exceptions import PlacementLookupFailed


TOKEN_TTL_SECONDS = 300


class InstanceMetadata(requests.Session):
    """Minimal IMDSv2 client."""

    def __init__(self, base_url, timeout=2):
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token = None

    @retrying.debug(times=3, acceptable=(ConnectionError, Timeout))
    def _fetch_token(self):
        ret = self.put(
            f"{self.base_url}/api/token",
            headers={"X-aws-ec2-metadata-token-ttl-seconds": str(TOKEN_TTL_SECONDS)},
            timeout=self.timeout,
        )
        ret.raise_for_status()
        return ret.text

    @retrying.debug(times=3, acceptable=(ConnectionError, Timeout))
    def get_metadata(self, key):
        if not self._token:
            self._token = self._fetch_token()
        ret = self.get(
            f"{self.base_url}/meta-data/{key.strip('/')}",
            headers={"X-aws-ec2-metadata-token": self._token},
            timeout=self.timeout,
        )
        ret.raise_for_status()
        return ret.text.strip()

    def region(self):
        return self.get_metadata("placement/region")

    def instance_id(self):
        return self.get_metadata("instance-id")


def get_subnet(ec2, instance_id):
    """Get the subnet which an EC2 instance belongs to."""
    resp = ec2.describe_instances(InstanceIds=[instance_id])
    instances = [i for r in resp.get("Reservations", []) for i in r.get("Instances", [])]
    if not instances:
        raise PlacementLookupFailed(
            reason=f"instance {instance_id} not found by EC2 DescribeInstances",
            instance_id=instance_id,
        )
    return instances[0]["SubnetId"]


def resolve_placement(config, metadata=None, ec2=None):
    """
    Resolve region and subnet of this host.
    Explicitly configured values win; anything missing is looked up from the instance metadata
    service and the EC2 API. Any failure raises PlacementLookupFailed.
    """
    region = config.region
    subnet = config.subnet
    instance_id = None

    if not (region and subnet):
        metadata = metadata or InstanceMetadata(config.metadata_url)
        try:
            region = region or metadata.region()
            if not subnet:
                instance_id = metadata.instance_id()
        except RequestException as exc:
            raise PlacementLookupFailed(reason=f"instance metadata service is unreachable ({exc})") from None

    if not subnet:
        try:
            ec2 = ec2 or boto3.client("ec2", region_name=region)
            subnet = get_subnet(ec2, instance_id)
        except (BotoCoreError, ClientError) as exc:
            raise PlacementLookupFailed(reason=f"EC2 DescribeInstances failed ({exc})", instance_id=instance_id) from None

    placement = Bunch(region=region, subnet_id=subnet, instance_id=instance_id)
    logger.info(f"Placement: region={region} subnet={subnet} instance={instance_id or '-'}")
    return placement
