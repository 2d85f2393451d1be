"""State-diffed G-code command formatting.

A command is rendered as whitespace-separated ``<letter><value>`` tokens in
the fixed order ``G X Y S``.  ``EmitterState`` remembers the last rendered
text of each token; a token is written only when its rendered text
changes, so ``X12.35`` followed by a move to 12.3499 prints nothing for X.

The mode token (``G0`` travel / ``G1`` burn) follows the same rule unless
verbose mode is on, in which case it is written on every command.

Example::

    state = EmitterState()
    emit(state, 0, x=0.05, y=0.05, precision=p)   # "G0 X0.05 Y0.05"
    emit(state, 1, x=0.05, s=1.0, precision=p)    # "G1 S1.0000"
    emit(state, 1, x=0.15, s=1.0, precision=p)    # "X0.15"
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from laser_raster.configs.loader import Precision

TRAVEL = 0
BURN = 1


@dataclass
class EmitterState:
    """Last emitted value per token, scoped to one scan run."""

    last_mode: Optional[int] = None
    last_x: Optional[str] = None
    last_y: Optional[str] = None
    last_s: Optional[str] = None


def format_number(value: float, decimals: int) -> str:
    """Render *value* with a fixed number of decimals (never ``-0.00``)."""
    return f"{round(float(value), decimals) + 0.0:.{decimals}f}"


def emit(
    state: EmitterState,
    mode: int,
    *,
    precision: Precision,
    x: Optional[float] = None,
    y: Optional[float] = None,
    s: Optional[float] = None,
    verbose: bool = False,
) -> str:
    """Render one command against *state* and record what was written.

    Parameters
    ----------
    state : EmitterState
        Run-scoped diff state, updated in place.
    mode : int
        ``TRAVEL`` (G0) or ``BURN`` (G1).
    precision : Precision
        Decimal places for X, Y and S.
    x, y, s : float, optional
        Values to emit; ``None`` leaves the token out.
    verbose : bool
        Always write the mode token.

    Returns
    -------
    str
        Tokens joined by spaces; empty when nothing changed.
    """
    tokens = []

    if verbose or mode != state.last_mode:
        tokens.append(f"G{mode}")
        state.last_mode = mode

    if x is not None:
        text = format_number(x, precision.x)
        if text != state.last_x:
            tokens.append(f"X{text}")
            state.last_x = text

    if y is not None:
        text = format_number(y, precision.y)
        if text != state.last_y:
            tokens.append(f"Y{text}")
            state.last_y = text

    if s is not None:
        text = format_number(s, precision.s)
        if text != state.last_s:
            tokens.append(f"S{text}")
            state.last_s = text

    return " ".join(tokens)
