from lightpath.main import LightPath, TOOL_VERSION

__version__ = "0.1.0"

__all__ = ["LightPath", "TOOL_VERSION", "__version__"]
