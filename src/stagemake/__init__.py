from .engine import run_build, BuildResult
from .resolver import DeriverRegistry
from .model import Job, DirectoryNode
from .config import ConfigDescriptor, TransformSection

__all__ = ["run_build", "BuildResult", "DeriverRegistry", "Job", "DirectoryNode", "ConfigDescriptor", "TransformSection"]
