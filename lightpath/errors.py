"""
Error types for the LightPath descriptor parser and build pipeline.

Every failure the tool can report derives from LightPathError and carries
the process exit code the CLI should return. Library code raises these;
only the CLI turns them into printed diagnostics.
"""


class LightPathError(Exception):
    """Base class for all reported LightPath failures."""

    exit_code = 1


class MissingDescriptorFileError(LightPathError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"The file {path} is not on the directory")


class DescriptorReadError(LightPathError):
    def __init__(self, path, reason):
        self.path = path
        super().__init__(f"Cannot read {path}: {reason}")


class MissingSourceDirectoryError(LightPathError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"The source directory '{path}' is not found")


class DescriptorSyntaxError(LightPathError):
    """Raised when the descriptor text cannot be parsed."""

    def __init__(self, message, line=None, column=None):
        self.line = line
        self.column = column
        if line is not None:
            message = f"{message} (line {line}, column {column})"
        super().__init__(message)


class InvalidVersionError(DescriptorSyntaxError):
    def __init__(self, value, line=None, column=None):
        self.value = value
        super().__init__(
            f"build_version must be an integer, got '{value}'", line, column
        )


class VersionIncompatibilityError(LightPathError):
    def __init__(self, required, running):
        self.required = required
        self.running = running
        super().__init__(
            f"The build file is made for the lightpath version {required} "
            f"(this is version {running})"
        )


class CapacityError(LightPathError):
    """Raised when a bounded collection of the project model is full."""


class ArchiveError(LightPathError):
    pass


class CodegenError(LightPathError):
    pass


class CompileError(LightPathError):
    pass


class FunctionNotFoundError(LightPathError):
    def __init__(self, name, descriptor="build.path"):
        self.name = name
        super().__init__(f'"{name}" Function on {descriptor} is not there')


class ReservedFunctionNameError(LightPathError):
    def __init__(self, name):
        self.name = name
        super().__init__(f'"{name}" Function is a built-in function and cannot be called')
