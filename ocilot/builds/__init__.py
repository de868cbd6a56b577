"""Build orchestration module.

This module handles:
- Parsing build requests from command-line values
- Payload assembly and the incremental-build staleness check
- Running a build over injected resolver, file, registry and cache backends
"""

from ocilot.builds.payload import build_payload, freshness_watermark, lookup_cached
from ocilot.builds.service import Builder, create_builder, open_inputs
from ocilot.builds.spec import make_build, parse_arch, parse_artifact_spec

__all__ = [
    "Builder",
    "build_payload",
    "create_builder",
    "freshness_watermark",
    "lookup_cached",
    "make_build",
    "open_inputs",
    "parse_arch",
    "parse_artifact_spec",
]
