"""Remote Content Gate - startup resolver for remotely hosted content."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("remote-content-gate")
except PackageNotFoundError:
    # Package is not installed (e.g., running from source without pip install)
    __version__ = "0.0.0.dev0"

# Re-export core public API
from content_gate.bootstrap import bootstrap, choose_root_view, on_native_view_shown
from content_gate.resolver import Decision, DecisionKind, GateResolver, ResolutionPolicy

# NOTE: Update this list when adding new exports to this module.
__all__ = [
    "__version__",
    "Decision",
    "DecisionKind",
    "GateResolver",
    "ResolutionPolicy",
    "bootstrap",
    "choose_root_view",
    "on_native_view_shown",
]
