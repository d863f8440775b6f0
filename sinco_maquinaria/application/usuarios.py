"""User commands: registration, profile changes, deactivation, refresh tokens."""
from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from sinco_maquinaria.application.repository import AggregateRepository
from sinco_maquinaria.application.security import hash_password, verify_password
from sinco_maquinaria.application.validacion import Reglas
from sinco_maquinaria.domain.aggregates.usuario import Usuario
from sinco_maquinaria.domain.enums import RolUsuario, try_parse_enum
from sinco_maquinaria.domain.errors import ValidationError
from sinco_maquinaria.domain.events import (
    DomainEvent,
    RefreshTokenGenerado,
    RefreshTokenRevocado,
    UsuarioActualizado,
    UsuarioCreado,
    UsuarioDesactivado,
)
from sinco_maquinaria.domain.identity import new_stream_id

REFRESH_TOKEN_TTL = timedelta(days=7)
MIN_PASSWORD_LENGTH = 6


class UsuariosService:

    def __init__(self, repository: AggregateRepository):
        self.repository = repository

    async def listar(self, solo_activos: bool = True) -> list[Usuario]:
        usuarios = await self.repository.load_all(Usuario)
        return [u for u in usuarios if u.activo or not solo_activos]

    async def buscar_por_email(self, email: str) -> Usuario | None:
        email = email.strip().casefold()
        for usuario in await self.repository.load_all(Usuario):
            if usuario.email.casefold() == email:
                return usuario
        return None

    async def crear(self, email: str, password: str, nombre: str, rol: str | None = None) -> Usuario:
        """Register a user. An unknown rol falls back to User."""
        (Reglas()
            .requerido(email, "El email es requerido")
            .fallar_si(bool(email) and "@" not in email, "El email no es válido")
            .requerido(nombre, "El nombre es requerido")
            .fallar_si(len(password or "") < MIN_PASSWORD_LENGTH,
                       f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres")
            .validar())
        if await self.buscar_por_email(email) is not None:
            raise ValidationError("El email ya está registrado", code="DUPLICATE")

        usuario_id = new_stream_id()
        return await self.repository.save(Usuario(id=usuario_id), [UsuarioCreado(
            id=usuario_id,
            email=email.strip(),
            password_hash=hash_password(password),
            nombre=nombre,
            rol=(try_parse_enum(RolUsuario, rol) or RolUsuario.USER).value,
            fecha_creacion=datetime.now(timezone.utc),
        )])

    async def crear_administrador_inicial(self, email: str, password: str, nombre: str) -> Usuario:
        """First-run setup: only allowed while no user exists."""
        if await self.repository.store.stream_ids(Usuario.stream_type):
            raise ValidationError("Ya existen usuarios en el sistema", code="SETUP_DONE")
        return await self.crear(email, password, nombre, RolUsuario.ADMIN.value)

    async def autenticar(self, email: str, password: str) -> Usuario | None:
        usuario = await self.buscar_por_email(email)
        if usuario is None or not usuario.activo:
            return None
        if not verify_password(password, usuario.password_hash):
            return None
        return usuario

    async def actualizar(
        self,
        usuario_id: str,
        nombre: str,
        rol: str | None = None,
        activo: bool | None = None,
        password: str | None = None,
        modificado_por: str | None = None,
        modificado_por_nombre: str | None = None,
    ) -> Usuario:
        rol_valido = None
        if rol is not None:
            rol_valido = try_parse_enum(RolUsuario, rol)
        (Reglas()
            .requerido(nombre, "El nombre es requerido")
            .fallar_si(rol is not None and rol_valido is None,
                       f"El rol debe ser uno de: {', '.join(r.value for r in RolUsuario)}")
            .fallar_si(bool(password) and len(password) < MIN_PASSWORD_LENGTH,
                       f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres")
            .validar())
        password_hash = hash_password(password) if password else None

        def decide(usuario: Usuario) -> list[DomainEvent]:
            return [UsuarioActualizado(
                id=usuario.id,
                nombre=nombre,
                rol=rol_valido.value if rol_valido else None,
                activo=activo,
                password_hash=password_hash,
                modificado_por=modificado_por,
                modificado_por_nombre=modificado_por_nombre,
                fecha_modificacion=datetime.now(timezone.utc),
            )]

        return await self.repository.execute(Usuario, usuario_id, decide)

    async def desactivar(self, usuario_id: str) -> Usuario:
        def decide(usuario: Usuario) -> list[DomainEvent]:
            if not usuario.activo:
                return []
            events: list[DomainEvent] = [UsuarioDesactivado(id=usuario.id)]
            if usuario.refresh_token is not None:
                events.append(RefreshTokenRevocado(
                    usuario_id=usuario.id, fecha_revocacion=datetime.now(timezone.utc),
                ))
            return events

        return await self.repository.execute(Usuario, usuario_id, decide)

    async def generar_refresh_token(self, usuario_id: str, ttl: timedelta = REFRESH_TOKEN_TTL) -> str:
        token = secrets.token_urlsafe(48)

        def decide(usuario: Usuario) -> list[DomainEvent]:
            if not usuario.activo:
                raise ValidationError("El usuario está inactivo", code="INACTIVE_USER")
            now = datetime.now(timezone.utc)
            return [RefreshTokenGenerado(
                usuario_id=usuario.id, refresh_token=token, expiry=now + ttl, fecha_creacion=now,
            )]

        await self.repository.execute(Usuario, usuario_id, decide)
        return token

    async def revocar_refresh_token(self, usuario_id: str) -> Usuario:
        def decide(usuario: Usuario) -> list[DomainEvent]:
            if usuario.refresh_token is None:
                return []
            return [RefreshTokenRevocado(usuario_id=usuario.id, fecha_revocacion=datetime.now(timezone.utc))]

        return await self.repository.execute(Usuario, usuario_id, decide)

    async def validar_refresh_token(self, usuario_id: str, token: str) -> bool:
        usuario = await self.repository.find(Usuario, usuario_id)
        return usuario is not None and usuario.refresh_token_valido(token, datetime.now(timezone.utc))
