"""Edit-reconciliation engine.

Key Components:

- TagStreamScanner: Pull-based state machine extracting tagged edit blocks
  from a chunked model output stream (``step(chunk) -> events``)
- TagRegistry / TagDescriptor: Validated, frozen set of recognized tags
- parse_attributes: Tolerant tag attribute parser
- EditExpander: Expands elision markers, SEARCH/REPLACE blocks and unified
  diffs into complete file content
- RepresentationChooser: Full-file vs. unified-diff selection
- PatchApplier: Concurrent, per-path serialized application with outcome
  classification (created / modified / ignored / invalid)
- ChangeLedger: Per-turn record of reconciled changes with lazy reset
- EditPipeline: One assistant turn end to end
- PipelineConfig / PipelineConfigLoader: Pydantic v2 config loaded from YAML

Architecture:
- Components only call forward (scanner -> expander -> chooser -> applier -> ledger)
- Reconciliation failures raise ReconcileError subclasses, isolated per file
- The applier reports expected failures through ApplyOutcome only
- Path checks in the filesystem layer return FileResult instead of raising
"""

from .applier import PatchApplier
from .attributes import parse_attributes
from .chooser import RepresentationChooser
from .config import (
    ApplierConfig,
    ChooserConfig,
    ExpanderConfig,
    PipelineConfig,
    PipelineConfigLoader,
    ScannerConfig,
)
from .exceptions import (
    EditError,
    ElisionError,
    IncompleteTagError,
    InvalidPathError,
    PatchApplyError,
    PatchFormatError,
    ReconcileError,
    SearchReplaceError,
    StreamError,
    TagRegistryError,
)
from .expander import EditExpander, strip_code_fence
from .fs import FileSystem, LocalFileSystem, PathResolver
from .ignore import GitignorePredicate, IgnorePredicate
from .ledger import ChangeLedger
from .models import ApplyOutcome, ChangeKind, EditRecord, ReconciledChange, TurnResult
from .pipeline import EditPipeline
from .result import FileResult
from .scanner import (
    ScanEvent,
    TagBodyChunk,
    TagClosed,
    TagIncomplete,
    TagOpened,
    TagStreamScanner,
    TextSegment,
    ascan,
    scan,
)
from .tags import TagDescriptor, TagRegistry
from .textdiff import apply_unified_patch, generate_unified_diff

__all__ = [
    # Scanning
    "TagStreamScanner",
    "ScanEvent",
    "TextSegment",
    "TagOpened",
    "TagBodyChunk",
    "TagClosed",
    "TagIncomplete",
    "scan",
    "ascan",
    "TagDescriptor",
    "TagRegistry",
    "parse_attributes",
    # Reconciliation
    "EditExpander",
    "strip_code_fence",
    "RepresentationChooser",
    "generate_unified_diff",
    "apply_unified_patch",
    # Application
    "PatchApplier",
    "FileSystem",
    "LocalFileSystem",
    "PathResolver",
    "GitignorePredicate",
    "IgnorePredicate",
    "ChangeLedger",
    "EditPipeline",
    # Models
    "ChangeKind",
    "EditRecord",
    "ReconciledChange",
    "ApplyOutcome",
    "TurnResult",
    "FileResult",
    # Configuration
    "PipelineConfig",
    "PipelineConfigLoader",
    "ScannerConfig",
    "ExpanderConfig",
    "ChooserConfig",
    "ApplierConfig",
    # Errors
    "EditError",
    "TagRegistryError",
    "StreamError",
    "IncompleteTagError",
    "ReconcileError",
    "ElisionError",
    "SearchReplaceError",
    "PatchFormatError",
    "PatchApplyError",
    "InvalidPathError",
]
