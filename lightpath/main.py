import os

from lightpath.config import LightPathConfig
from lightpath.errors import DescriptorReadError, MissingDescriptorFileError
from lightpath.lightpath_parser import parse_descriptor
from lightpath.model import TOOL_VERSION
from lightpath.runner import build_project, run_custom_function


class LightPath:
    """LightPath build descriptor: parsed project plus build and run entry points."""

    def __init__(self, from_file=None, strict=False, config=None):
        if from_file is None:
            raise ValueError("from_file parameter is required")

        self._file_path = from_file
        self._config = config or LightPathConfig.from_env(
            workdir=os.path.dirname(os.path.abspath(from_file))
        )
        self._strict = strict or self._config.strict
        self._project = None
        self._parse_file()

    def _parse_file(self):
        if not os.path.isfile(self._file_path):
            raise MissingDescriptorFileError(self._file_path)

        # Undecodable bytes pass through unchanged to the shell and the runtime stub.
        try:
            with open(self._file_path, "r", encoding="utf-8", errors="surrogateescape") as f:
                content = f.read()
        except OSError as e:
            raise DescriptorReadError(self._file_path, e) from e

        self._project = parse_descriptor(
            content, strict=self._strict, tool_version=TOOL_VERSION
        )

    @property
    def project(self):
        return self._project

    @property
    def config(self):
        return self._config

    @property
    def build(self):
        """The reserved build block."""
        return self._project.build

    @property
    def main(self):
        """The reserved main block packaged into the runtime stub."""
        return self._project.main

    @property
    def custom_functions(self):
        """Custom function names in declaration order, duplicates included."""
        return self._project.custom_names

    def build_project(self):
        """Run the build block and package the project when it asks for it."""
        return build_project(self._project, self._config)

    def run_function(self, name):
        """Run a custom function by name."""
        return run_custom_function(
            self._project, name, descriptor=os.path.basename(self._file_path)
        )
