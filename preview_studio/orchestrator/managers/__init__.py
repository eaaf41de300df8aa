"""Remote-service managers for the orchestrator.

Each module wraps one external API behind an async class: the sandbox
provider (``sandbox``) and the GitHub issue-comment API (``comments``).
Managers raise domain exceptions, never HTTP exceptions -- that
translation is the router's responsibility.
"""
