"""Comment bodies rendered with Jinja2.

Every body starts with ``COMMENT_MARKER`` (an HTML comment, invisible on
GitHub) so bot comments are recognisable in the PR thread.

Template variables:

- ``preview_url``  : str -- preview address (preview comment only)
- ``workspace_id`` : str -- registry id of the workspace
- ``branch``       : str -- PR head branch (preview comment only)
- ``updated_at``   : str -- render time, UTC
"""

from __future__ import annotations

from datetime import UTC, datetime

import jinja2

COMMENT_MARKER = "<!-- preview-studio -->"

PREVIEW_TEMPLATE = """\
{{ marker }}
### :rocket: Preview environment ready

| | |
|---|---|
| **Preview** | [{{ preview_url }}]({{ preview_url }}) |
| **Branch** | `{{ branch }}` |
| **Workspace** | `{{ workspace_id }}` |

<sub>Updated {{ updated_at }}. The preview is rebuilt on every push and removed when the PR is closed.</sub>
"""

CLEANUP_TEMPLATE = """\
{{ marker }}
### :broom: Preview environment removed

The pull request was closed, so workspace `{{ workspace_id }}` has been deleted.

<sub>{{ updated_at }}</sub>
"""

_env = jinja2.Environment(autoescape=False, undefined=jinja2.StrictUndefined)  # noqa: S701


def _now() -> str:
    return datetime.now(tz=UTC).strftime("%Y-%m-%d %H:%M UTC")


def render_preview_comment(preview_url: str, workspace_id: str, branch: str) -> str:
    return _env.from_string(PREVIEW_TEMPLATE).render(
        marker=COMMENT_MARKER,
        preview_url=preview_url,
        workspace_id=workspace_id,
        branch=branch,
        updated_at=_now(),
    )


def render_cleanup_comment(workspace_id: str) -> str:
    return _env.from_string(CLEANUP_TEMPLATE).render(
        marker=COMMENT_MARKER,
        workspace_id=workspace_id,
        updated_at=_now(),
    )
