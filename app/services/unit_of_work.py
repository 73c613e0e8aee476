# services/unit_of_work.py
"""Transacción única por cupo (evento, subgrupo).

Toda operación que lee cupos y escribe inscripciones pasa por
``capacity_pool``: toma un lock local por cupo, bloquea con
``SELECT ... FOR UPDATE`` la fila dueña del cupo (``Event`` o
``EventSubgroup``), ejecuta el cuerpo y hace commit. Las notificaciones
y la señal ``enrollment_changed`` se registran con ``after_commit`` y solo
corren una vez confirmada la transacción.
"""
import threading
import weakref
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from ..errors import EventNotFound, SubgroupNotFound, TransactionConflict
from ..extensions import db
from ..models import Event, EventSubgroup
from ..signals import enrollment_changed

_registry_lock = threading.Lock()
# Una entrada vive mientras alguna operación sostenga su lock.
_pool_locks = weakref.WeakValueDictionary()


def _lock_for(scope: tuple) -> threading.Lock:
    with _registry_lock:
        lock = _pool_locks.get(scope)
        if lock is None:
            lock = _pool_locks[scope] = threading.Lock()
        return lock


def _scopes_for(event_id: int, subgroup_id: int | None) -> list[tuple]:
    """Locks locales que necesita el cupo, en orden fijo.

    Sin subgrupo también se toman los de cada subgrupo del evento: en
    SQLite ``FOR UPDATE`` no bloquea nada y cancelar el evento debe
    excluir a las inscripciones por subgrupo en curso.
    """
    if subgroup_id is not None:
        return [(event_id, subgroup_id)]
    subgroup_ids = db.session.execute(
        select(EventSubgroup.subgroup_id)
        .where(EventSubgroup.event_id == event_id)
        .order_by(EventSubgroup.subgroup_id.asc())
    ).scalars().all()
    return [(event_id, None)] + [(event_id, sid) for sid in subgroup_ids]


class UnitOfWork:
    def __init__(self, event_id: int, subgroup_id: int | None = None):
        self.event_id = event_id
        self.subgroup_id = subgroup_id
        self.event: Event | None = None
        self.pool: Event | EventSubgroup | None = None
        self._callbacks = []

    @property
    def scope(self) -> tuple:
        return (self.event_id, self.subgroup_id)

    def after_commit(self, fn, *args, **kwargs):
        self._callbacks.append((fn, args, kwargs))

    def lock_rows(self):
        # Siempre evento antes que subgrupo, para no provocar deadlocks.
        event_stmt = select(Event).where(Event.id == self.event_id)
        if self.subgroup_id is None:
            event_stmt = event_stmt.with_for_update()
        else:
            event_stmt = event_stmt.with_for_update(read=True)
        self.event = db.session.execute(event_stmt).scalar_one_or_none()
        if self.event is None:
            raise EventNotFound()

        if self.subgroup_id is None:
            self.pool = self.event
            return

        self.pool = db.session.execute(
            select(EventSubgroup)
            .where(
                EventSubgroup.event_id == self.event_id,
                EventSubgroup.subgroup_id == self.subgroup_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if self.pool is None:
            raise SubgroupNotFound()

    def run_callbacks(self):
        # El commit ya ocurrió: un fallo aquí no puede deshacer la inscripción.
        for fn, args, kwargs in self._callbacks:
            try:
                fn(*args, **kwargs)
            except Exception as exc:
                current_app.logger.error(
                    "Error en tarea posterior al commit (evento=%s): %s",
                    self.event_id,
                    exc,
                    exc_info=True,
                )
        try:
            enrollment_changed.send(
                current_app._get_current_object(),
                event_id=self.event_id,
                subgroup_id=self.subgroup_id,
            )
        except Exception as exc:
            current_app.logger.error(
                "Error notificando cambio de inscripciones (evento=%s): %s",
                self.event_id,
                exc,
                exc_info=True,
            )


def _acquire_locks(scopes: list[tuple]) -> list[threading.Lock] | None:
    timeout = current_app.config.get("ENROLLMENT_LOCK_TIMEOUT", 10)
    held = []
    for scope in scopes:
        lock = _lock_for(scope)
        if not lock.acquire(timeout=timeout):
            for acquired in reversed(held):
                acquired.release()
            return None
        held.append(lock)
    return held


@contextmanager
def capacity_pool(event_id: int, subgroup_id: int | None = None):
    uow = UnitOfWork(event_id, subgroup_id)
    locks = _acquire_locks(_scopes_for(event_id, subgroup_id))
    if locks is None:
        db.session.rollback()
        current_app.logger.error(
            "Tiempo de espera agotado para el cupo evento=%s subgrupo=%s",
            event_id,
            subgroup_id,
        )
        raise TransactionConflict()

    try:
        # Lo cargado antes del lock puede estar desactualizado.
        db.session.expire_all()
        try:
            uow.lock_rows()
            yield uow
            db.session.commit()
        except OperationalError as exc:
            db.session.rollback()
            current_app.logger.error(
                "Conflicto de transacción en evento=%s subgrupo=%s: %s",
                event_id,
                subgroup_id,
                exc,
                exc_info=True,
            )
            raise TransactionConflict() from exc
        except Exception:
            db.session.rollback()
            raise
    finally:
        for lock in reversed(locks):
            lock.release()

    uow.run_callbacks()


def with_transaction(scope: tuple, fn):
    """Ejecuta ``fn(uow)`` dentro del cupo ``scope = (event_id, subgroup_id)``."""
    event_id, subgroup_id = scope
    with capacity_pool(event_id, subgroup_id) as uow:
        return fn(uow)
