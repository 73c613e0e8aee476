# app/models.py
import enum
from datetime import datetime, timezone
from .extensions import db
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash


# ---------- Mixins ----------
class UtcTimestampMixin:
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

# ---------- Enums ----------
class EventStatus(enum.Enum):
    active = "vigente"
    elapsed = "transcurrido"
    canceled = "cancelado"

class EventCategory(enum.Enum):
    outing = "salida"
    normal = "normal"
    paid = "pago"

class PaymentStatus(enum.Enum):
    pending = "Pendiente"
    paid = "Pagada"
    failed = "Fallida"


# ---------- Core ----------
class User(UserMixin, UtcTimestampMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    last_name = db.Column(db.String(120), nullable=True)
    password_hash = db.Column(db.String(512), nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    enrollments = db.relationship("EventEnrollment", back_populates="user",
                                  cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.last_name}" if self.last_name else self.name

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def __repr__(self):
        return f"<User {self.email} admin={self.is_admin}>"


class Subgroup(UtcTimestampMixin, db.Model):
    """Subgrupo administrado por el servicio de grupos; aquí solo se referencia."""

    __tablename__ = "subgroups"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Subgroup {self.name}>"


# ---------- Eventos ----------
class Event(UtcTimestampMixin, db.Model):
    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    place = db.Column(db.String(200), nullable=True)

    capacity = db.Column(db.Integer, default=0, nullable=False)
    alternate_capacity = db.Column(db.Integer, default=0, nullable=False)
    inscription_deadline = db.Column(db.DateTime(timezone=True), nullable=True)
    withdrawal_deadline = db.Column(db.DateTime(timezone=True), nullable=True)

    status = db.Column(db.Enum(EventStatus), default=EventStatus.active,
                       nullable=False, index=True)
    category = db.Column(db.Enum(EventCategory), default=EventCategory.normal,
                         nullable=False)
    cost = db.Column(db.Integer, nullable=True)
    destination_account = db.Column(db.String(120), nullable=True)

    subgroup_pools = db.relationship("EventSubgroup", back_populates="event",
                                     cascade="all, delete-orphan")
    enrollments = db.relationship("EventEnrollment", back_populates="event",
                                  cascade="all, delete-orphan")

    __table_args__ = (
        db.CheckConstraint("capacity >= 0", name="ck_events_capacity"),
        db.CheckConstraint("alternate_capacity >= 0", name="ck_events_alternate_capacity"),
    )

    def to_dict(self) -> dict:
        def _iso(value):
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "name": self.name,
            "date": _iso(self.date),
            "description": self.description,
            "place": self.place,
            "capacity": self.capacity,
            "alternate_capacity": self.alternate_capacity,
            "inscription_deadline": _iso(self.inscription_deadline),
            "withdrawal_deadline": _iso(self.withdrawal_deadline),
            "status": self.status.value,
            "category": self.category.value,
            "cost": self.cost,
            "subgroups": [
                {
                    "subgroup_id": pool.subgroup_id,
                    "capacity": pool.capacity,
                    "alternate_capacity": pool.alternate_capacity,
                }
                for pool in self.subgroup_pools
            ],
        }

    def __repr__(self):
        return f"<Event {self.id} {self.name} {self.status.value}>"


class EventSubgroup(db.Model):
    """Cupos de un evento delegados a un subgrupo."""

    __tablename__ = "event_subgroups"

    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), primary_key=True
    )
    subgroup_id = db.Column(
        db.Integer, db.ForeignKey("subgroups.id", ondelete="CASCADE"), primary_key=True
    )
    capacity = db.Column(db.Integer, default=0, nullable=False)
    alternate_capacity = db.Column(db.Integer, default=0, nullable=False)

    event = db.relationship("Event", back_populates="subgroup_pools")
    subgroup = db.relationship("Subgroup")

    __table_args__ = (
        db.CheckConstraint("capacity >= 0", name="ck_event_subgroups_capacity"),
        db.CheckConstraint(
            "alternate_capacity >= 0", name="ck_event_subgroups_alternate_capacity"
        ),
    )

    def __repr__(self):
        return f"<EventSubgroup event={self.event_id} subgroup={self.subgroup_id}>"


class EventEnrollment(UtcTimestampMixin, db.Model):
    __tablename__ = "event_enrollments"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False, index=True
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True
    )
    subgroup_id = db.Column(db.Integer, db.ForeignKey("subgroups.id"),
                            nullable=True, index=True)

    enrolled_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    is_alternate = db.Column(db.Boolean, default=False, nullable=False)
    alternate_order = db.Column(db.Integer, nullable=True)
    promoted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Datos del formulario de inscripción
    residence = db.Column(db.String(200), nullable=True)
    role = db.Column(db.String(120), nullable=True)
    first_time = db.Column(db.Boolean, nullable=True)
    career = db.Column(db.String(200), nullable=True)
    career_year = db.Column(db.Integer, nullable=True)
    sender_name = db.Column(db.String(200), nullable=True)

    event = db.relationship("Event", back_populates="enrollments")
    user = db.relationship("User", back_populates="enrollments")
    subgroup = db.relationship("Subgroup")
    payments = db.relationship("EventPayment", back_populates="enrollment")

    __table_args__ = (
        db.UniqueConstraint("event_id", "user_id", name="uq_event_enrollments_event_user"),
        db.CheckConstraint(
            "(is_alternate AND alternate_order >= 1) OR "
            "(NOT is_alternate AND alternate_order IS NULL)",
            name="ck_event_enrollments_alternate_order",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "user_id": self.user_id,
            "subgroup_id": self.subgroup_id,
            "name": self.user.full_name if self.user else None,
            "enrolled_at": self.enrolled_at.isoformat() if self.enrolled_at else None,
            "is_alternate": self.is_alternate,
            "alternate_order": self.alternate_order,
            "promoted_at": self.promoted_at.isoformat() if self.promoted_at else None,
        }

    def __repr__(self):
        kind = f"alternate#{self.alternate_order}" if self.is_alternate else "titular"
        return f"<EventEnrollment event={self.event_id} user={self.user_id} {kind}>"


class EventPayment(UtcTimestampMixin, db.Model):
    __tablename__ = "event_payments"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False, index=True
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True
    )
    enrollment_id = db.Column(
        db.Integer, db.ForeignKey("event_enrollments.id", ondelete="SET NULL"),
        nullable=True
    )

    amount_clp = db.Column(db.Integer, nullable=False)
    payment_status = db.Column(
        db.Enum(PaymentStatus), default=PaymentStatus.pending, nullable=False
    )
    currency = db.Column(db.String(3), default="CLP", nullable=False)

    detail = db.Column(db.Text, nullable=True)       # datos de inscripción en JSON
    external_id = db.Column(db.String(120), nullable=True, unique=True)  # token Webpay
    rejection_code = db.Column(db.String(60), nullable=True)

    event = db.relationship("Event")
    user = db.relationship("User")
    enrollment = db.relationship("EventEnrollment", back_populates="payments")

    def __repr__(self):
        return f"<EventPayment {self.id} event={self.event_id} {self.amount_clp} {self.payment_status.name}>"
