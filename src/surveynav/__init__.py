"""
surveynav: render-agnostic navigation engine for multi-step surveys.

Layers:
    model / serialization      survey tree and its authored JSON/YAML form
    evaluator                  condition evaluation (rules, builder shapes,
                               expression interpreter)
    graph / resolver           pages built from the tree, next-step resolution
    history / session          uuid-keyed navigation history, one run
    versioning                 undo/redo for the flow editor
    analyzer / backends / cli  diagnostics and diagrams

ARCHITECTURAL GUARANTEE:
------------------------
This package knows nothing about rendering, field widgets or storage.
Hosts supply answers, computed values and (optionally) a history sink.
"""

__version__ = "0.1.0"
