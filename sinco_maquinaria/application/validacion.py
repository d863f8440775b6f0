"""Command-field checks that collect every failure before rejecting."""
from __future__ import annotations

from decimal import Decimal

from sinco_maquinaria.domain.errors import ValidationError


class Reglas:

    def __init__(self) -> None:
        self.errors: list[str] = []

    def requerido(self, value: str | None, message: str) -> Reglas:
        if value is None or not str(value).strip():
            self.errors.append(message)
        return self

    def max_len(self, value: str | None, limit: int, message: str) -> Reglas:
        if value and len(value) > limit:
            self.errors.append(message)
        return self

    def no_negativo(self, value: int | float | Decimal | None, message: str) -> Reglas:
        if value is not None and value < 0:
            self.errors.append(message)
        return self

    def en(self, value: str | None, allowed: tuple[str, ...], message: str, ignore_case: bool = False) -> Reglas:
        if ignore_case:
            ok = value is not None and value.casefold() in {a.casefold() for a in allowed}
        else:
            ok = value in allowed
        if not ok:
            self.errors.append(message)
        return self

    def fallar_si(self, condition: bool, message: str) -> Reglas:
        if condition:
            self.errors.append(message)
        return self

    def validar(self) -> None:
        """Raise ValidationError with every collected failure, if any."""
        if self.errors:
            raise ValidationError(self.errors)
