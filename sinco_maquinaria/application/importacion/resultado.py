from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ResultadoImportacion:
    creados: int = 0
    actualizados: int = 0
    advertencias: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.creados + self.actualizados
