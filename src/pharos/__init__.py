"""
Pharos - query-execution core for a desktop PostgreSQL client.

Subpackages:
- pharos.core: errors, logging, settings, identifiers, pools, session registry
- pharos.query: value marshalling, execution, editability analysis, commits
- pharos.ops: string-error boundary consumed by UI and CLI layers
- pharos.cli: command line interface
"""

__version__ = "0.1.0"
