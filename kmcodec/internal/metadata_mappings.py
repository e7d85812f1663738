from enum import Enum, auto
from typing import Optional

import attr


class MetadataKeys(Enum):
    UNITS = 1
    FORMAT = 2          # struct code of a binary field
    LENGTH = 3          # field holds the byte length of its own block
    GEO_LIMIT = 4       # absolute bound of a bit-half swapped coordinate


class Units(Enum):
    # Time
    NANOSECOND = auto()
    SECOND = auto()

    # Base Units (not base SI, just base for the program)
    METER = auto()
    DEGREE = auto()
    HZ = auto()
    BYTE = auto()

    CELSIUS = auto()
    PSU = auto()
    PASCAL = auto()

    DB = auto()
    SAMPLE = auto()

    # Geographic Specific Units
    DEGREES_DD = auto()

    # Derived Units
    METERSPERSECOND = auto()
    METERSPERSECOND2 = auto()
    DBPERMETER = auto()

    DEGREESPERSECOND = auto()


# Dictionary of unit descriptions in format:
#   Category :: Standard Name ::
unit_desc = {
    Units.NANOSECOND: "Nanoseconds (ns)",
    Units.SECOND: "Seconds (s)",
    Units.METER: "Meters (m)",
    Units.DEGREE: "Angular Degrees (deg)",  # Unit for angular/rotational sensor measurments
    Units.HZ: "Hertz (Hz -> s^-1)",
    Units.BYTE: "Bytes (B)",
    Units.CELSIUS: "Degrees Celsius",
    Units.PSU: "Practical Salinity Units (psu)",
    Units.PASCAL: "Pascal (Pa)",
    Units.DB: "Decibel (dB)",
    Units.SAMPLE: "sample point (samp)",
    Units.DEGREES_DD: "Decimal degrees (DD)",
    Units.METERSPERSECOND: "Meters per second (m/s)",
    Units.METERSPERSECOND2: "Meters per second squared (m/s^2)",
    Units.DBPERMETER: "decibels per meter (dB/m)",
    Units.DEGREESPERSECOND: "Angular degrees per second (deg/s)",
}


def units_of(cls: type, field_name: str) -> Optional[Units]:
    """ Returns the units attached to an attrs field, None if it has none"""
    field = attr.fields_dict(cls)[field_name]
    return field.metadata.get(MetadataKeys.UNITS)
