from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class MetaAssignment(BaseModel):
    """``var(pred, -pred) = "value"`` or ``var(...) += "value"``."""

    variable: str
    predicates: tuple[str, ...] = ()  # negated predicates keep their leading "-"
    op: Literal["=", "+="] = "="
    value: str

    def applies(self, active: frozenset[str]) -> bool:
        for pred in self.predicates:
            if pred.startswith("-"):
                if pred[1:] in active:
                    return False
            elif pred not in active:
                return False
        return True


class MetaPackage(BaseModel):
    """Parsed body of a META file or of a nested ``package "name" ( ... )`` block."""

    name: str
    assignments: list[MetaAssignment] = []
    children: list[MetaPackage] = []

    def lookup(self, variable: str, active: frozenset[str] = frozenset()) -> str | None:
        """Resolve ``variable`` under the ``active`` predicates.

        The first ``=`` assignment whose predicates all hold wins; every
        applicable ``+=`` is then appended, space separated.
        """
        base: str | None = None
        extra: list[str] = []
        for a in self.assignments:
            if a.variable != variable or not a.applies(active):
                continue
            if a.op == "=":
                if base is None:
                    base = a.value
            else:
                extra.append(a.value)
        if base is None and not extra:
            return None
        return " ".join(([base] if base is not None else []) + extra)
