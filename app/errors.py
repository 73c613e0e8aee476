# app/errors.py
"""Rechazos del núcleo de inscripciones.

Cada tipo tiene un ``code`` estable para que los clientes puedan distinguir
"ya inscrito" de "evento lleno", un mensaje para mostrar y el status HTTP.
"""


class EnrollmentError(ValueError):
    code = "enrollment_error"
    status = 400
    message = "No se pudo procesar la inscripción"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class EventNotFound(EnrollmentError):
    code = "event_not_found"
    status = 404
    message = "El evento no existe"


class EventNotActive(EnrollmentError):
    code = "event_not_active"
    status = 409
    message = "El evento no está vigente"


class SubgroupNotFound(EnrollmentError):
    code = "subgroup_not_found"
    status = 404
    message = "El subgrupo no tiene cupos asignados en este evento"


class DeadlinePassed(EnrollmentError):
    code = "deadline_passed"
    status = 409

    INSCRIPTION = "inscription"
    WITHDRAWAL = "withdrawal"

    def __init__(self, deadline: str, message: str | None = None):
        self.deadline = deadline
        if message is None:
            message = (
                "La fecha límite de inscripción ya pasó"
                if deadline == self.INSCRIPTION
                else "La fecha límite para darse de baja ya pasó"
            )
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["deadline"] = self.deadline
        return data


class AlreadyEnrolled(EnrollmentError):
    code = "already_enrolled"
    status = 409
    message = "Ya estás inscrito en este evento"


class CapacityExhausted(EnrollmentError):
    code = "capacity_exhausted"
    status = 409
    message = "No hay cupos disponibles ni como suplente"


class NotEnrolled(EnrollmentError):
    code = "not_enrolled"
    status = 404
    message = "No estás inscrito en este evento"


class InvalidCapacityEdit(EnrollmentError):
    code = "invalid_capacity_edit"
    status = 422
    message = "Los cupos no pueden ser menores a la cantidad de inscritos actuales"


class InvalidEventData(EnrollmentError):
    code = "invalid_event_data"
    status = 422
    message = "Los datos del evento no son válidos"


class TransactionConflict(EnrollmentError):
    code = "transaction_conflict"
    status = 503
    message = "Hay muchas solicitudes simultáneas para este evento. Intenta nuevamente."
