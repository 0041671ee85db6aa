# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Image name resolution, image metadata and image exception matching.

Images may be given on the command line either as full resource URLs
(``projects/debian-cloud/global/images/family/debian-12``) or as short
names (``debian-12``, ``rhel-9-v20240110``). Short names are mapped to
their publishing project by distribution prefix.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from imagetest.exceptions import ImageResolutionError

logger = logging.getLogger(__name__)

PROJECT_MAP: dict[str, str] = {
    "almalinux": "almalinux-cloud",
    "centos": "centos-cloud",
    "cos": "cos-cloud",
    "debian": "debian-cloud",
    "fedora-cloud": "fedora-cloud",
    "fedora-coreos": "fedora-coreos-cloud",
    "opensuse": "opensuse-cloud",
    "rhel": "rhel-cloud",
    "rhel-sap": "rhel-sap-cloud",
    "rocky-linux": "rocky-linux-cloud",
    "sles": "suse-cloud",
    "sles-sap": "suse-sap-cloud",
    "sql-": "windows-sql-cloud",
    "ubuntu": "ubuntu-os-cloud",
    "ubuntu-pro": "ubuntu-os-pro-cloud",
    "windows": "windows-cloud",
}

# A trailing version stamp such as v20240110 marks a concrete image, not a family
_VERSIONED_IMAGE = re.compile(r".*v([0-9]+)")

ARCH_X86_64 = "X86_64"
ARCH_ARM64 = "ARM64"


def image_project(image: str) -> str:
    """Return the project publishing a short image name.

    SAP images follow a different naming convention (``rhel-9-0-sap-ha``)
    and are matched by distribution plus a ``sap`` marker anywhere in the
    name. Other names use their longest matching prefix.

    Raises:
        ImageResolutionError: If no known prefix matches.
    """
    for key, project in PROJECT_MAP.items():
        if "sap" in key:
            distro = key.split("-")[0]
            if image.startswith(distro) and "sap" in image:
                return project

    matches = [key for key in PROJECT_MAP if image.startswith(key)]
    if not matches:
        raise ImageResolutionError(f"Unknown image {image}", image=image)
    return PROJECT_MAP[max(matches, key=len)]


def resolve_image(image: str) -> str:
    """Resolve a short image name to a full image URL.

    Names containing a ``/`` are returned unchanged.

    Args:
        image: A short image name or a full image URL.

    Returns:
        ``projects/P/global/images/NAME`` for versioned names, otherwise
        ``projects/P/global/images/family/NAME``.

    Raises:
        ImageResolutionError: If the project cannot be determined.

    Example:
        >>> resolve_image("debian-12")
        'projects/debian-cloud/global/images/family/debian-12'
        >>> resolve_image("debian-12-bookworm-v20240110")
        'projects/debian-cloud/global/images/debian-12-bookworm-v20240110'
    """
    if "/" in image:
        return image

    project = image_project(image)
    if _VERSIONED_IMAGE.match(image):
        return f"projects/{project}/global/images/{image}"
    return f"projects/{project}/global/images/family/{image}"


def resolve_images(images: str) -> list[str]:
    """Resolve a comma separated image list, skipping empty entries."""
    return [resolve_image(i.strip()) for i in images.split(",") if i.strip()]


@dataclass
class Image:
    """Metadata about the image under test.

    Attributes:
        name: Image or family name, the last segment of the image URL.
        architecture: ``X86_64`` or ``ARM64``.
        guest_os_features: Feature flags such as ``UEFI_COMPATIBLE``.
        family: Family name when the image was referenced by family.
    """

    name: str
    architecture: str = ARCH_X86_64
    guest_os_features: list[str] = field(default_factory=list)
    family: str | None = None

    def has_feature(self, feature: str) -> bool:
        """Return True if the image declares the guest OS feature."""
        return feature in self.guest_os_features

    @property
    def is_windows(self) -> bool:
        return self.has_feature("WINDOWS")


class ImageCatalog(ABC):
    """Looks up metadata for an image URL."""

    @abstractmethod
    def lookup(self, image_url: str) -> Image:
        """Return metadata for the image at ``image_url``."""


class StaticImageCatalog(ImageCatalog):
    """Image catalog backed by a mapping, with name-based inference.

    Images not present in the mapping are described from their name:
    an ``arm64`` marker selects the ARM64 architecture and Windows or SQL
    Server names carry the ``WINDOWS`` feature.
    """

    DEFAULT_FEATURES = ("UEFI_COMPATIBLE", "GVNIC", "VIRTIO_SCSI_MULTIQUEUE")

    def __init__(self, images: dict[str, Image] | None = None) -> None:
        self._images = dict(images or {})

    def lookup(self, image_url: str) -> Image:
        if image_url in self._images:
            return self._images[image_url]

        name = image_url.rstrip("/").rsplit("/", 1)[-1]
        architecture = ARCH_ARM64 if "arm64" in name else ARCH_X86_64
        features = list(self.DEFAULT_FEATURES)
        if name.startswith(("windows", "sql-")):
            features.append("WINDOWS")
        family = name if "/family/" in image_url else None
        logger.debug(f"Inferred image {name} ({architecture}) from {image_url}")
        return Image(
            name=name,
            architecture=architecture,
            guest_os_features=features,
            family=family,
        )


class ExceptionType(Enum):
    """How an image version is compared against an exception version."""

    EQUAL = "eq"
    NOT_EQUAL = "ne"
    GREATER_THAN = "gt"
    LESS_THAN = "lt"
    GREATER_THAN_OR_EQUAL = "ge"
    LESS_THAN_OR_EQUAL = "le"


# Base image patterns
IMAGE_UBUNTU = "ubuntu.*"
IMAGE_UBUNTU_MINIMAL = "ubuntu-minimal.*"
IMAGE_COS = "cos.*"
IMAGE_SLES = "sles.*"
IMAGE_DEBIAN = "debian.*"
IMAGE_RHEL = "rhel.*"
IMAGE_RHEL_SAP = "rhel.*sap.*"
IMAGE_ROCKY = "rocky-linux.*"
IMAGE_CENTOS = "centos.*"
IMAGE_ALMALINUX = "almalinux.*"
IMAGE_WINDOWS = "windows.*"
IMAGE_SQL = "sql.*"
IMAGE_EL = "(" + "|".join(
    [IMAGE_RHEL, IMAGE_RHEL_SAP, IMAGE_ROCKY, IMAGE_CENTOS, IMAGE_ALMALINUX]
) + ")"
IMAGE_ALL_WINDOWS = "(" + "|".join([IMAGE_WINDOWS, IMAGE_SQL]) + ")"


def _basename(image: str) -> str:
    return image.rstrip("/").rsplit("/", 1)[-1]


def parse_version(image: str) -> int:
    """Return the first integer component of an image name.

    The name is split on ``-`` and the first part that parses as an
    integer is the version: ``debian-12-bookworm`` is 12 and
    ``ubuntu-2204-lts`` is 2204. Returns 0 when there is none.
    """
    for part in _basename(image).split("-"):
        if part.isdigit():
            return int(part)
    return 0


@dataclass(frozen=True)
class ImageException:
    """An image, or range of image versions, a test does not apply to.

    Attributes:
        match: Regex matched against the image name. Ignored by ``match_all``.
        version: OS version the exception refers to; 0 means every version.
        type: How the image version is compared against ``version``.
    """

    match: str = ""
    version: int = 0
    type: ExceptionType = ExceptionType.EQUAL

    def check_version(self, version: int) -> bool:
        """Return True if ``version`` satisfies this exception."""
        match self.type:
            case ExceptionType.EQUAL:
                return version == self.version
            case ExceptionType.NOT_EQUAL:
                return version != self.version
            case ExceptionType.GREATER_THAN:
                return version > self.version
            case ExceptionType.LESS_THAN:
                return version < self.version
            case ExceptionType.GREATER_THAN_OR_EQUAL:
                return version >= self.version
            case ExceptionType.LESS_THAN_OR_EQUAL:
                return version <= self.version
        return False

    def matches(self, image: str) -> bool:
        """Return True if the image name and version fall under this exception."""
        if not re.search(self.match, _basename(image)):
            return False
        return self.version == 0 or self.check_version(parse_version(image))


def has_match(image: str, exceptions: list[ImageException]) -> bool:
    """Return True if any exception applies to the image."""
    return any(exception.matches(image) for exception in exceptions)


def match_all(image: str, base: str, *exceptions: ImageException) -> bool:
    """Return True if the image matches ``base`` and every version constraint.

    The ``match`` field of the exceptions is ignored. An exception with
    version 0 accepts every version.

    Args:
        image: Image name or URL.
        base: Regex the image basename must match, e.g. ``IMAGE_DEBIAN``.
        *exceptions: Version constraints that must all hold.
    """
    name = _basename(image)
    if not re.search(base, name):
        return False
    if not exceptions:
        return True

    version = parse_version(name)
    for exception in exceptions:
        if exception.version == 0:
            continue
        if not exception.check_version(version):
            return False
    return True
