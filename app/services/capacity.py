# services/capacity.py
from dataclasses import asdict, dataclass

from sqlalchemy import func, select

from ..errors import EventNotFound, SubgroupNotFound
from ..extensions import db
from ..models import Event, EventEnrollment, EventSubgroup


@dataclass(frozen=True)
class CapacityStats:
    capacity: int
    alternate_capacity: int
    titular_occupied: int
    alternate_occupied: int

    @property
    def titular_available(self) -> int:
        return self.capacity - self.titular_occupied

    @property
    def alternate_available(self) -> int:
        return self.alternate_capacity - self.alternate_occupied

    def to_dict(self) -> dict:
        data = asdict(self)
        data["titular_available"] = self.titular_available
        data["alternate_available"] = self.alternate_available
        return data


def pool_criteria(event_id: int, subgroup_id: int | None) -> list:
    """Filtro de inscripciones que ocupan el cupo (evento, subgrupo)."""
    criteria = [EventEnrollment.event_id == event_id]
    if subgroup_id is None:
        criteria.append(EventEnrollment.subgroup_id.is_(None))
    else:
        criteria.append(EventEnrollment.subgroup_id == subgroup_id)
    return criteria


def listing_criteria(event: Event, subgroup_id: int | None) -> list:
    """Como ``pool_criteria``, pero sin subgrupo un evento con cupos por
    subgrupo abarca todos sus subgrupos, igual que ``get_capacity_stats``."""
    if subgroup_id is None and event.subgroup_pools:
        return [EventEnrollment.event_id == event.id]
    if subgroup_id is not None and db.session.get(EventSubgroup, (event.id, subgroup_id)) is None:
        raise SubgroupNotFound()
    return pool_criteria(event.id, subgroup_id)


def count_occupancy(event_id: int, subgroup_id: int | None = None) -> tuple[int, int]:
    """Retorna (titulares, suplentes) del cupo."""
    rows = db.session.execute(
        select(EventEnrollment.is_alternate, func.count(EventEnrollment.id))
        .where(*pool_criteria(event_id, subgroup_id))
        .group_by(EventEnrollment.is_alternate)
    ).all()
    counts = {bool(is_alternate): total for is_alternate, total in rows}
    return counts.get(False, 0), counts.get(True, 0)


def stats_for_pool(pool: Event | EventSubgroup, subgroup_id: int | None = None) -> CapacityStats:
    event_id = pool.id if isinstance(pool, Event) else pool.event_id
    titulars, alternates = count_occupancy(event_id, subgroup_id)
    return CapacityStats(
        capacity=pool.capacity,
        alternate_capacity=pool.alternate_capacity,
        titular_occupied=titulars,
        alternate_occupied=alternates,
    )


def get_capacity_stats(event_id: int, subgroup_id: int | None = None) -> CapacityStats:
    """Estadísticas de solo lectura.

    Sin subgrupo, un evento con cupos por subgrupo informa la suma de sus
    subgrupos; para decidir una inscripción se usa ``stats_for_pool`` dentro
    de la transacción del cupo.
    """
    event = db.session.get(Event, event_id)
    if event is None:
        raise EventNotFound()

    if subgroup_id is not None:
        pool = db.session.get(EventSubgroup, (event_id, subgroup_id))
        if pool is None:
            raise SubgroupNotFound()
        return stats_for_pool(pool, subgroup_id)

    if not event.subgroup_pools:
        return stats_for_pool(event)

    parts = [stats_for_pool(p, p.subgroup_id) for p in event.subgroup_pools]
    return CapacityStats(
        capacity=sum(s.capacity for s in parts),
        alternate_capacity=sum(s.alternate_capacity for s in parts),
        titular_occupied=sum(s.titular_occupied for s in parts),
        alternate_occupied=sum(s.alternate_occupied for s in parts),
    )
