"""beepack: compile BPF programs and ship them as OCI artifacts.

Pipeline:
  - Compile a BPF C source in the builder image or with local tools
  - Package the ELF plus host platform metadata into an OCI image layout
  - Optionally copy the artifact into a scratch store and build an
    "uber" image combining it with the bee runner
"""

__version__ = "0.1.0"

from beepack.core.pipeline import BuildPipeline

__all__ = ["BuildPipeline", "__version__"]
