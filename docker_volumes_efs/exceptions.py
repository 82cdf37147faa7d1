from easypy.exceptions import TException


class ProvisionFailed(TException):
    template = "Provisioning failed: {reason}"


class ProvisionTimeout(ProvisionFailed):
    template = "{resource} {resource_id} did not become available after {attempts} attempts"


class MountFailed(TException):
    template = "Mounting {src} at {tgt} failed"


class UnmountFailed(TException):
    template = "Unmounting {tgt} failed"


class InventoryFailed(TException):
    template = "Unable to query running containers from {docker_host}"


class PlacementLookupFailed(TException):
    template = "Cannot determine placement of this host: {reason}"


class InvalidVolumeName(TException):
    template = "Invalid volume name {name!r}: {reason}"
