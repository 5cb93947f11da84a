from datetime import date
from enum import Enum


class Weekday(str, Enum):
    monday = "MON"
    tuesday = "TUE"
    wednesday = "WED"
    thursday = "THU"
    friday = "FRI"
    saturday = "SAT"
    sunday = "SUN"

    @classmethod
    def from_date(cls, value: date) -> "Weekday":
        return WEEKDAY_ORDER[value.weekday()]

    @property
    def index(self) -> int:
        return WEEKDAY_ORDER.index(self)


WEEKDAY_ORDER: list[Weekday] = [
    Weekday.monday,
    Weekday.tuesday,
    Weekday.wednesday,
    Weekday.thursday,
    Weekday.friday,
    Weekday.saturday,
    Weekday.sunday,
]
