# src/dispatch/roles.py - v1
"""Role instructions for the worker, loaded from prompts/<role>.txt.

Templates use $placeholders (string.Template) so JSON examples inside the
prompts need no brace escaping.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from string import Template

_PROMPTS_DIR = Path(__file__).parent / "prompts"

SURVEYOR = "surveyor"
INTERVIEWER = "interviewer"
DRAFTER = "drafter"
RECONCILER = "reconciler"
COMPACTOR = "compactor"
FIXER = "fixer"


@lru_cache(maxsize=None)
def _load(role: str) -> Template:
    path = _PROMPTS_DIR / f"{role}.txt"
    return Template(path.read_text(encoding="utf-8"))


def instructions(role: str, **params: object) -> str:
    """Render the instructions for a role.

    Raises:
        FileNotFoundError: If the role has no prompt file.
        KeyError: If a placeholder is left without a value.
    """
    return _load(role).substitute({k: str(v) for k, v in params.items()}).strip() + "\n"
