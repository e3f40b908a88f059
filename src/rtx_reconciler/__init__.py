"""rtxcraft - configuration reconciliation for Yamaha RTX routers over the CLI."""
from .engine import Grammar, Reconciler, SessionCoordinator
from .grammars import GRAMMARS, get_grammar

__version__ = "0.1.0"

__all__ = [
    "Grammar",
    "Reconciler",
    "SessionCoordinator",
    "GRAMMARS",
    "get_grammar",
    "__version__",
]
