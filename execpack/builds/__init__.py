"""Build orchestration module.

This module handles:
- The weighted build step table and sequential pipeline
- Progress reporting and timing breakdown
- Running the compiler collaborator
- Build-info metadata for produced executables
"""

from execpack.builds.pipeline import DEFAULT_STEPS, BuildPipeline, BuildStep

__all__ = ["DEFAULT_STEPS", "BuildPipeline", "BuildStep"]

# Lazy imports for submodules to avoid circular imports
# Access via execpack.builds.service, etc.
