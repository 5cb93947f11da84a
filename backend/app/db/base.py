from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]
