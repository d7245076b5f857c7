# src/context/budgeter.py - v1
"""Context budgeter: fit a set of context fragments under a token ceiling.

Each fragment has up to three degraded renderings below *full*:

  decision records:  full -> condensed -> reference
  documents:         full -> summary
  brief/instructions/other: always full

Policy, measured on the total full-rendering estimate T:

  T <  low watermark  -> everything full
  T <= high watermark -> decisions condensed, documents full
  T >  high watermark -> decisions by reference, documents summarized

More than `max_full_decisions` decision fragments forces decisions to
reference mode whatever their size. A degraded rendering never costs more
than the rendering it replaces, so lowering the ceiling never grows the
package. If the most degraded package still exceeds the ceiling the
budgeter raises ContextOverflow naming the largest fragment; it never
truncates content.

Pure and deterministic: identical inputs give byte-identical output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from grandlibrary.context.tokens import estimate_tokens
from grandlibrary.core.errors import ContextOverflow

if TYPE_CHECKING:
    from grandlibrary.config.settings import Settings

logger = logging.getLogger(__name__)

FragmentKind = Literal["brief", "decision", "document", "manifest", "instruction", "other"]
RenderLevel = Literal["full", "condensed", "summary", "reference"]
BudgetMode = Literal["full", "condensed", "degraded"]

DEFAULT_LOW_WATERMARK = 0.60
DEFAULT_HIGH_WATERMARK = 0.85
DEFAULT_MAX_FULL_DECISIONS = 8


@dataclass(frozen=True)
class Fragment:
    """One candidate piece of context."""

    id: str
    kind: FragmentKind
    full: str
    summary: str | None = None
    condensed: str | None = None
    reference_path: str = ""

    @property
    def full_tokens(self) -> int:
        return estimate_tokens(self.full)

    def reference_text(self) -> str:
        where = self.reference_path or self.id
        return f"[reference] Full content at {where}; fetch it on demand if needed."


@dataclass(frozen=True)
class Rendering:
    """The rendering chosen for one fragment."""

    fragment_id: str
    kind: FragmentKind
    level: RenderLevel
    text: str

    @property
    def tokens(self) -> int:
        return estimate_tokens(self.text)

    def block(self) -> str:
        return f"### [{self.kind}] {self.fragment_id}\n{self.text.strip()}"


@dataclass(frozen=True)
class PackagedContext:
    """Budgeted context ready for dispatch."""

    text: str
    total_tokens: int
    ceiling: int
    mode: BudgetMode
    forced_reference: bool
    renderings: tuple[Rendering, ...]

    def level_of(self, fragment_id: str) -> RenderLevel | None:
        for r in self.renderings:
            if r.fragment_id == fragment_id:
                return r.level
        return None


def _pick(
    full: str, steps: list[tuple[RenderLevel, str | None]]
) -> tuple[RenderLevel, str]:
    """Walk a degradation ladder from full, keeping each step only if it is not larger."""
    level: RenderLevel = "full"
    text = full
    for next_level, next_text in steps:
        if next_text is not None and len(next_text) <= len(text):
            level, text = next_level, next_text
    return level, text


def _render(
    fragment: Fragment,
    decision_level: RenderLevel,
    document_level: RenderLevel,
) -> Rendering:
    ladder: list[tuple[RenderLevel, str | None]] = []
    if fragment.kind == "decision":
        if decision_level in ("condensed", "reference"):
            ladder.append(("condensed", fragment.condensed))
        if decision_level == "reference":
            ladder.append(("reference", fragment.reference_text()))
    elif fragment.kind == "document" and document_level == "summary":
        ladder.append(("summary", fragment.summary))
    level, text = _pick(fragment.full, ladder)
    return Rendering(fragment_id=fragment.id, kind=fragment.kind, level=level, text=text)


def _assemble(renderings: list[Rendering]) -> str:
    return "\n\n".join(r.block() for r in renderings) + "\n"


def select(
    fragments: list[Fragment],
    ceiling: int,
    low_watermark: float = DEFAULT_LOW_WATERMARK,
    high_watermark: float = DEFAULT_HIGH_WATERMARK,
    max_full_decisions: int = DEFAULT_MAX_FULL_DECISIONS,
) -> PackagedContext:
    """Choose renderings for fragments so the package fits under ceiling.

    Args:
        fragments: Candidate fragments, in the order they should appear.
        ceiling: Token ceiling for the assembled package.
        low_watermark: Fraction of ceiling under which everything is full.
        high_watermark: Fraction of ceiling above which documents are summarized.
        max_full_decisions: Decision count above which decisions go by reference.

    Returns:
        PackagedContext with the assembled text and per-fragment renderings.

    Raises:
        ContextOverflow: If the fully degraded package exceeds the ceiling.
        ValueError: On duplicate fragment ids or a non-positive ceiling.
    """
    if ceiling <= 0:
        raise ValueError("ceiling must be positive")
    seen: set[str] = set()
    for f in fragments:
        if f.id in seen:
            raise ValueError(f"duplicate fragment id: {f.id}")
        seen.add(f.id)

    full_total = estimate_tokens(_assemble([_render(f, "full", "full") for f in fragments]))
    n_decisions = sum(1 for f in fragments if f.kind == "decision")
    forced_reference = n_decisions > max_full_decisions

    mode: BudgetMode
    if full_total < low_watermark * ceiling:
        mode, decision_level, document_level = "full", "full", "full"
    elif full_total <= high_watermark * ceiling:
        mode, decision_level, document_level = "condensed", "condensed", "full"
    else:
        mode, decision_level, document_level = "degraded", "reference", "summary"
    if forced_reference:
        decision_level = "reference"

    renderings = [_render(f, decision_level, document_level) for f in fragments]
    text = _assemble(renderings)
    total = estimate_tokens(text)

    if total > ceiling:
        offender = max(renderings, key=lambda r: r.tokens)
        logger.error(
            "Context overflow: %d tokens > ceiling %d (largest fragment %s, %d tokens)",
            total, ceiling, offender.fragment_id, offender.tokens,
        )
        raise ContextOverflow(offender.fragment_id, offender.tokens, total, ceiling)

    logger.debug(
        "Context packaged: mode=%s forced_reference=%s %d fragments, ~%d/%d tokens",
        mode, forced_reference, len(renderings), total, ceiling,
    )
    return PackagedContext(
        text=text,
        total_tokens=total,
        ceiling=ceiling,
        mode=mode,
        forced_reference=forced_reference,
        renderings=tuple(renderings),
    )


class ContextBudgeter:
    """Settings-bound wrapper around select()."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def select(self, fragments: list[Fragment], ceiling: int | None = None) -> PackagedContext:
        s = self._settings
        return select(
            fragments,
            ceiling if ceiling is not None else s.context_ceiling_tokens,
            low_watermark=s.budget_low_watermark,
            high_watermark=s.budget_high_watermark,
            max_full_decisions=s.budget_max_full_decisions,
        )
