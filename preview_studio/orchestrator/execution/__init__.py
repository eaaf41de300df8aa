"""Event handling pipeline for the orchestrator.

- **controller**: Lifecycle state machine (PR event -> workspace operations -> comment)
- **templates**: Comment body rendering (Jinja2 templates)
"""
