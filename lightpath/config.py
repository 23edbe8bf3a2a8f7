"""
Runtime configuration for a LightPath invocation.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional


DEFAULT_DESCRIPTOR = "build.path"
DEFAULT_SOURCE_DIR = "source"
DEFAULT_OUTPUT = "lightpath_app"


@dataclass(frozen=True)
class LightPathConfig:
    """Paths and tools used by the build orchestrator and packager.

    Relative paths are resolved against ``workdir``.
    """

    workdir: Path = field(default_factory=Path.cwd)
    descriptor: str = DEFAULT_DESCRIPTOR
    source_dir: str = DEFAULT_SOURCE_DIR
    output: str = DEFAULT_OUTPUT
    archive_name: str = "source_packed.zip"
    stub_name: str = "lightpath_runtime.c"
    data_name: str = "source_data.c"
    compiler: str = "gcc"
    strict: bool = False

    def __post_init__(self):
        object.__setattr__(self, "workdir", Path(self.workdir))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides):
        """Build a config from ``CC``, ``LIGHTPATH_SOURCE_DIR`` and ``LIGHTPATH_OUTPUT``."""
        environ = os.environ if environ is None else environ
        values = {}
        if environ.get("CC"):
            values["compiler"] = environ["CC"]
        if environ.get("LIGHTPATH_SOURCE_DIR"):
            values["source_dir"] = environ["LIGHTPATH_SOURCE_DIR"]
        if environ.get("LIGHTPATH_OUTPUT"):
            values["output"] = environ["LIGHTPATH_OUTPUT"]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def descriptor_path(self) -> Path:
        return self.workdir / self.descriptor

    @property
    def source_path(self) -> Path:
        return self.workdir / self.source_dir

    @property
    def archive_path(self) -> Path:
        # The payload sits next to the source directory, one level above it.
        return self.source_path.parent / self.archive_name

    @property
    def stub_path(self) -> Path:
        return self.workdir / self.stub_name

    @property
    def data_path(self) -> Path:
        return self.workdir / self.data_name

    @property
    def output_path(self) -> Path:
        return self.workdir / self.output
