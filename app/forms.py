from flask_wtf import FlaskForm
from wtforms import (
    Form,
    StringField,
    PasswordField,
    IntegerField,
    BooleanField,
    SelectField,
)
from wtforms.fields import DateTimeField
from wtforms.validators import (
    DataRequired,
    Email,
    InputRequired,
    NumberRange,
    Optional,
    Length,
)
from .models import EventCategory

# Acepta "2025-03-05T18:30", con segundos y con zona horaria.
DATETIME_FORMATS = ["%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M"]


class LoginForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Email()])
    password = PasswordField("Contraseña", validators=[DataRequired()])


class InscriptionForm(FlaskForm):
    residence = StringField("Residencia", validators=[Optional(), Length(max=200)])
    role = StringField("Rol", validators=[Optional(), Length(max=120)])
    first_time = BooleanField("¿Es tu primera vez?")
    career = StringField("Carrera", validators=[Optional(), Length(max=200)])
    career_year = IntegerField(
        "Año de carrera", validators=[Optional(), NumberRange(min=1, max=10)]
    )
    sender_name = StringField("Nombre del remitente", validators=[Optional(), Length(max=200)])
    subgroup_id = IntegerField("Subgrupo", validators=[Optional()])

    def registration_details(self) -> dict:
        return {
            "residence": self.residence.data or None,
            "role": self.role.data or None,
            "first_time": bool(self.first_time.data),
            "career": self.career.data or None,
            "career_year": self.career_year.data,
            "sender_name": self.sender_name.data or None,
        }


class EventForm(FlaskForm):
    name = StringField("Nombre", validators=[DataRequired(), Length(max=200)])
    date = DateTimeField("Fecha", format=DATETIME_FORMATS, validators=[DataRequired()])
    description = StringField("Descripción", validators=[Optional()])
    place = StringField("Lugar", validators=[Optional(), Length(max=200)])
    capacity = IntegerField("Cupos", validators=[NumberRange(min=0)], default=0)
    alternate_capacity = IntegerField(
        "Cupos suplentes", validators=[NumberRange(min=0)], default=0
    )
    category = SelectField(
        "Categoría",
        choices=[(c.value, c.value.capitalize()) for c in EventCategory],
        default=EventCategory.normal.value,
    )
    inscription_deadline = DateTimeField(
        "Fecha límite de inscripción", format=DATETIME_FORMATS, validators=[Optional()]
    )
    withdrawal_deadline = DateTimeField(
        "Fecha límite de baja", format=DATETIME_FORMATS, validators=[Optional()]
    )
    cost = IntegerField("Costo (CLP)", validators=[Optional(), NumberRange(min=1)])
    destination_account = StringField("Cuenta destino", validators=[Optional(), Length(max=120)])


class EventUpdateForm(FlaskForm):
    name = StringField("Nombre", validators=[Optional(), Length(max=200)])
    date = DateTimeField("Fecha", format=DATETIME_FORMATS, validators=[Optional()])
    description = StringField("Descripción", validators=[Optional()])
    place = StringField("Lugar", validators=[Optional(), Length(max=200)])
    capacity = IntegerField("Cupos", validators=[Optional(), NumberRange(min=0)])
    alternate_capacity = IntegerField("Cupos suplentes", validators=[Optional(), NumberRange(min=0)])
    inscription_deadline = DateTimeField(
        "Fecha límite de inscripción", format=DATETIME_FORMATS, validators=[Optional()]
    )
    withdrawal_deadline = DateTimeField(
        "Fecha límite de baja", format=DATETIME_FORMATS, validators=[Optional()]
    )
    cost = IntegerField("Costo (CLP)", validators=[Optional(), NumberRange(min=1)])
    destination_account = StringField("Cuenta destino", validators=[Optional(), Length(max=120)])

    CLEARABLE = ("description", "place", "inscription_deadline", "withdrawal_deadline",
                 "destination_account")

    def changes(self) -> dict:
        """Solo los campos que vinieron en la solicitud.

        Un campo opcional enviado vacío (o ``null``) se borra.
        """
        data = {}
        for name, field in self._fields.items():
            if name == "csrf_token" or not field.raw_data:
                continue
            if field.data in (None, ""):
                if name in self.CLEARABLE:
                    data[name] = None
                continue
            data[name] = field.data
        return data


# --- Subformulario de cupos por subgrupo ---
class SubgroupPoolForm(Form):
    subgroup_id = IntegerField("Subgrupo", validators=[InputRequired()])
    capacity = IntegerField("Cupos", validators=[InputRequired(), NumberRange(min=0)])
    alternate_capacity = IntegerField(
        "Cupos suplentes", validators=[InputRequired(), NumberRange(min=0)]
    )


class SubgroupPoolUpdateForm(FlaskForm):
    capacity = IntegerField("Cupos", validators=[Optional(), NumberRange(min=0)])
    alternate_capacity = IntegerField("Cupos suplentes", validators=[Optional(), NumberRange(min=0)])
