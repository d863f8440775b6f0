"""Usuario Aggregate — identity, credential, role and refresh-token state."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar

from sinco_maquinaria.domain.aggregates.base import Aggregate, applies, event_time
from sinco_maquinaria.domain.enums import RolUsuario, parse_enum
from sinco_maquinaria.domain.events import (
    RecordedEvent,
    RefreshTokenGenerado,
    RefreshTokenRevocado,
    UsuarioActualizado,
    UsuarioCreado,
    UsuarioDesactivado,
)


@dataclass
class Usuario(Aggregate):
    stream_type: ClassVar[str] = "usuario"

    email: str = ""
    password_hash: str = ""
    nombre: str = ""
    rol: RolUsuario = RolUsuario.USER
    activo: bool = True
    fecha_creacion: datetime | None = None
    fecha_modificacion: datetime | None = None
    refresh_token: str | None = None
    refresh_token_expiry: datetime | None = None

    def refresh_token_valido(self, token: str, now: datetime) -> bool:
        if not self.activo or self.refresh_token is None or self.refresh_token != token:
            return False
        return self.refresh_token_expiry is None or self.refresh_token_expiry > now

    @applies(UsuarioCreado)
    def _creado(self, e: UsuarioCreado, meta: RecordedEvent) -> None:
        self._require_new(e)
        self.id = e.id or meta.stream_id
        self.email = e.email
        self.password_hash = e.password_hash
        self.nombre = e.nombre
        self.rol = parse_enum(RolUsuario, e.rol, "Rol")
        self.activo = True
        self.fecha_creacion = event_time(e.fecha_creacion, meta)

    @applies(UsuarioActualizado)
    def _actualizado(self, e: UsuarioActualizado, meta: RecordedEvent) -> None:
        self.nombre = e.nombre
        if e.rol is not None:
            self.rol = parse_enum(RolUsuario, e.rol, "Rol")
        if e.activo is not None:
            self.activo = e.activo
        if e.password_hash:
            self.password_hash = e.password_hash
        self.fecha_modificacion = event_time(e.fecha_modificacion, meta)

    @applies(UsuarioDesactivado)
    def _desactivado(self, e: UsuarioDesactivado, meta: RecordedEvent) -> None:
        self.activo = False

    @applies(RefreshTokenGenerado)
    def _token_generado(self, e: RefreshTokenGenerado, meta: RecordedEvent) -> None:
        self.refresh_token = e.refresh_token
        self.refresh_token_expiry = e.expiry

    @applies(RefreshTokenRevocado)
    def _token_revocado(self, e: RefreshTokenRevocado, meta: RecordedEvent) -> None:
        self.refresh_token = None
        self.refresh_token_expiry = None
