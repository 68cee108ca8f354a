"""Types for the artifact fetcher.

BundleManifest is the metadata.json pushed next to the binary coverage
files by the collector sidecar; it is external input and validated with
pydantic. CoverageBundle is the validated on-disk result of a pull.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator

MANIFEST_FILENAME = "metadata.json"
COVERAGE_DIRNAME = "covdata"


class ContainerRef(BaseModel):
    """The container the coverage was collected from."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    image: str

    @field_validator("image")
    @classmethod
    def image_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("container.image must not be empty")
        return v


class BundleManifest(BaseModel):
    """metadata.json describing one coverage collection.

    container.image is the join key for the provenance lookup.
    """

    model_config = ConfigDict(extra="ignore")

    pod_name: str
    namespace: str
    container: ContainerRef
    collected_at: datetime
    test_name: str = ""

    @property
    def container_image(self) -> str:
        return self.container.image

    @property
    def container_name(self) -> str:
        return self.container.name


@dataclass(frozen=True)
class CoverageBundle:
    """A validated coverage bundle on disk.

    coverage_dir holds only the binary coverage files (covmeta.* and
    covcounters.*) so the converter can read it as a Go coverage directory.
    """

    reference: str
    root: Path
    coverage_dir: Path
    meta_files: tuple[Path, ...]
    counter_files: tuple[Path, ...]
    manifest_path: Path
    manifest: BundleManifest

    def to_dict(self) -> dict:
        return {
            "reference": self.reference,
            "root": str(self.root),
            "meta_files": [p.name for p in self.meta_files],
            "counter_files": [p.name for p in self.counter_files],
            "container_image": self.manifest.container_image,
            "pod_name": self.manifest.pod_name,
            "namespace": self.manifest.namespace,
            "test_name": self.manifest.test_name,
            "collected_at": self.manifest.collected_at.isoformat(),
        }
