"""Public package surface for the declarative environment composer.

Exposes the composition-root helpers, the domain value objects consumers
inspect, the error taxonomy, and the logging hooks. Adapters stay importable
from their own modules for callers that need to substitute them.
"""

from __future__ import annotations

from .application.compose import compose
from .application.expand import expand
from .application.overlay import apply_overlays
from .application.registry import ResolutionCache, SourceRegistry
from .core import build_environment, build_matrix, discover_document, load_document, load_settings
from .domain.descriptor import EnvironmentDescriptor, ExpansionResult, ResolvedConfig
from .domain.errors import (
    ComposeError,
    DependencyNotFound,
    InvalidDocument,
    InvalidFormat,
    LayeredEnvError,
    LocatorUnreachable,
    MaterializeError,
    NotFound,
    OverlayTargetMissing,
    ResolutionError,
    RevisionMismatch,
    UnknownSource,
    UnsupportedPlatform,
)
from .domain.model import (
    Add,
    Document,
    EnvVarSpec,
    Locator,
    Overlay,
    OutputSpec,
    Package,
    Replace,
    Shadow,
    Snapshot,
    Source,
    StartupAction,
    TargetPlatform,
)
from .observability import bind_trace_id, get_logger

__all__ = [
    "Add",
    "ComposeError",
    "DependencyNotFound",
    "Document",
    "EnvVarSpec",
    "EnvironmentDescriptor",
    "ExpansionResult",
    "InvalidDocument",
    "InvalidFormat",
    "LayeredEnvError",
    "Locator",
    "LocatorUnreachable",
    "MaterializeError",
    "NotFound",
    "OutputSpec",
    "Overlay",
    "OverlayTargetMissing",
    "Package",
    "Replace",
    "ResolutionCache",
    "ResolutionError",
    "ResolvedConfig",
    "RevisionMismatch",
    "Shadow",
    "Snapshot",
    "Source",
    "SourceRegistry",
    "StartupAction",
    "TargetPlatform",
    "UnknownSource",
    "UnsupportedPlatform",
    "apply_overlays",
    "bind_trace_id",
    "build_environment",
    "build_matrix",
    "compose",
    "discover_document",
    "expand",
    "get_logger",
    "load_document",
    "load_settings",
]
