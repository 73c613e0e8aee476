from blinker import Namespace

_signals = Namespace()

# Se emite después de cada commit que modifica inscripciones o cupos.
# Argumentos: sender=app, event_id, subgroup_id (None para el cupo del evento).
enrollment_changed = _signals.signal("enrollment-changed")
