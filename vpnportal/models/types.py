import enum

from vpnportal.extensions import db


class StrEnum(str, enum.Enum):
    def __str__(self):
        return self.value


def status_enum(enum_cls, name):
    """Store the enum's lowercase values, not member names."""
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
