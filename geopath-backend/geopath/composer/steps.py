"""Primitive pipeline steps and their PROJ text form."""
from __future__ import annotations

import shlex
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

Param = Tuple[str, Optional[str]]

# parameters negated by the closed-form inverse of each kernel
_NEGATED = {
    "helmert": ("x", "y", "z", "rx", "ry", "rz", "s", "dx", "dy", "dz", "drx", "dry", "drz", "ds"),
    "geogoffset": ("dlat", "dlon", "dh"),
}

_UNIT_PAIRS = (("xy_in", "xy_out"), ("z_in", "z_out"), ("t_in", "t_out"))
_UNIT_ORDER = [k for pair in _UNIT_PAIRS for k in pair]


def fmt(value: float) -> str:
    out = format(float(value), ".15g")
    return "0" if out == "-0" else out


def _negate(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    try:
        return fmt(-float(text))
    except ValueError:
        return text


def _invert_order(order: str) -> str:
    items = [int(v) for v in order.split(",")]
    inv = [0] * len(items)
    for i, v in enumerate(items):
        inv[abs(v) - 1] = (i + 1) if v > 0 else -(i + 1)
    return ",".join(str(v) for v in inv)


@dataclass(frozen=True)
class Step:
    name: str
    params: Tuple[Param, ...] = ()
    inverse: bool = False

    def param(self, key: str) -> Optional[str]:
        for k, v in self.params:
            if k == key:
                return v
        return None

    def has(self, key: str) -> bool:
        return any(k == key for k, _ in self.params)

    def param_float(self, key: str, default: float = 0.0) -> float:
        v = self.param(key)
        return default if v is None else float(v)

    def inverted(self) -> "Step":
        if self.name == "unitconvert":
            mapping: Dict[str, str] = {}
            for a, b in _UNIT_PAIRS:
                mapping[a], mapping[b] = b, a
            swapped = sorted(((mapping.get(k, k), v) for k, v in self.params), key=lambda kv: _UNIT_ORDER.index(kv[0]))
            return replace(self, params=tuple(swapped))
        if self.name == "axisswap" and self.param("order"):
            return replace(self, params=(("order", _invert_order(self.param("order"))),))  # type: ignore[arg-type]
        if self.name == "push":
            return replace(self, name="pop")
        if self.name == "pop":
            return replace(self, name="push")
        if self.name == "noop":
            return self
        negated = _NEGATED.get(self.name)
        if negated and not self.inverse and not self.has("exact"):
            return replace(self, params=tuple((k, _negate(v) if k in negated else v) for k, v in self.params))
        return replace(self, inverse=not self.inverse)

    def is_identity(self) -> bool:
        if self.name == "noop":
            return True
        if self.name == "unitconvert":
            return all(self.param(a) == self.param(b) for a, b in _UNIT_PAIRS)
        if self.name == "axisswap":
            order = self.param("order") or ""
            return order == ",".join(str(i + 1) for i in range(len(order.split(","))))
        return False

    def render(self) -> str:
        tokens = ["+inv"] if self.inverse else []
        tokens.append(f"+proj={self.name}")
        for k, v in self.params:
            tokens.append(f"+{k}" if v is None else f"+{k}={v}")
        return " ".join(tokens)


def _merge_orders(first: str, second: str) -> str:
    """Single ``axisswap`` order equal to applying ``first`` then ``second``."""
    a = [int(v) for v in first.split(",")]
    b = [int(v) for v in second.split(",")]
    n = max(len(a), len(b))
    a += list(range(len(a) + 1, n + 1))
    b += list(range(len(b) + 1, n + 1))
    merged = []
    for o in b:
        inner = a[abs(o) - 1]
        sign = (1 if o > 0 else -1) * (1 if inner > 0 else -1)
        merged.append(sign * abs(inner))
    return ",".join(str(v) for v in merged)


def _is_plain_swap(step: Step) -> bool:
    return step.name == "axisswap" and not step.inverse and step.param("order") is not None


def elide(steps: Sequence[Step]) -> List[Step]:
    """Drop identity steps and adjacent pairs that cancel; merge adjacent axis swaps."""
    out: List[Step] = []
    for step in steps:
        if step.is_identity():
            continue
        if out and _is_plain_swap(out[-1]) and _is_plain_swap(step):
            merged = Step("axisswap", (("order", _merge_orders(out[-1].param("order"), step.param("order"))),))  # type: ignore[arg-type]
            out.pop()
            if not merged.is_identity():
                out.append(merged)
            continue
        if out and out[-1].inverted() == step:
            out.pop()
            continue
        out.append(step)
    return out


def parse_proj_string(text: str) -> List[Step]:
    """Split a ``+proj=pipeline +step ...`` literal (or a single operation) into steps."""
    steps: List[Step] = []
    current: Optional[List[Param]] = None
    name: Optional[str] = None
    inverse = False

    def flush() -> None:
        if name is not None:
            steps.append(Step(name, tuple(current or ()), inverse))

    for token in shlex.split(text):
        token = token.lstrip("+")
        if not token:
            continue
        key, _, value = token.partition("=")
        if key == "step":
            flush()
            current, name, inverse = [], None, False
            continue
        if key == "proj" and value == "pipeline":
            continue
        if key == "inv":
            inverse = True
            continue
        if key == "proj":
            if name is not None:
                flush()
                current, inverse = [], False
            name = value
            current = current if current is not None else []
            continue
        if current is None:
            current = []
        current.append((key, value if _ else None))
    flush()
    return steps


@dataclass
class Pipeline:
    steps: List[Step] = field(default_factory=list)

    def to_proj_string(self) -> str:
        if not self.steps:
            return "+proj=noop"
        if len(self.steps) == 1:
            return self.steps[0].render()
        return "+proj=pipeline " + " ".join(f"+step {s.render()}" for s in self.steps)

    def inverse(self) -> "Pipeline":
        return Pipeline(elide([s.inverted() for s in reversed(self.steps)]))

    def transform(self, point: Sequence[float]) -> Tuple[float, ...]:
        from .execute import run

        return run(self.steps, point)

    def transform_points(self, points: Sequence[Sequence[float]]):
        from .execute import run_many

        return run_many(self.steps, points)

    def __str__(self) -> str:
        return self.to_proj_string()


__all__ = ["Step", "Pipeline", "elide", "fmt", "parse_proj_string"]
