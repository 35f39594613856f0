"""PDL Core - Product Development Lifecycle state engine.

Modules:
- models / database / store: entity store and schema migrations
- ordering / crud: gapless positional CRUD
- state_machine / lifecycle: step and cycle advancement
- consolidation: merging legacy per-checkout stores
- queries: status, roadmap and listings
- operations: named operations returning Ok/Err results
"""

__version__ = "1.0.0"
