import attr
import logging
import struct

from datetime import datetime, timedelta
from typing import BinaryIO, ClassVar, Dict, List, Optional, Tuple

import numpy as np

from kmcodec.internal.config import CodecConfig, default_config
from kmcodec.internal.errors import EncodingAnomaly, Truncated
from kmcodec.internal.metadata_mappings import MetadataKeys as MdK
from kmcodec.internal.metadata_mappings import Units

logger = logging.getLogger(__name__)

# Unavailable value tokens written by the sounder
UNAVAILABLE_LATITUDE = 200.0
UNAVAILABLE_LONGITUDE = 200.0
UNAVAILABLE_ELLIPSOIDHEIGHT = -999.0
UNAVAILABLE_SPEED = -1.0
UNAVAILABLE_COURSE = -4.0

LATITUDE_LIMIT = 90.0
LONGITUDE_LIMIT = 180.0

_epoch = datetime(1970, 1, 1)


# #### Geographic Coordinate Correction ####
# Latitude/longitude doubles are written with their two 32 bit words
# transposed relative to the little endian interpretation. The swap is its
# own inverse so the same operation is used on decode and encode.

def swap_bit_halves(raw: bytes) -> bytes:
    """ Swaps the upper and lower 32 bit halves of a 64 bit pattern

    Input is the 8 byte little endian pattern, as stored.
    """
    if len(raw) != 8:
        raise ValueError(f"Expected 8 bytes, got {len(raw)}")
    return raw[4:] + raw[:4]


def decode_geo(raw: bytes, name: str = "coordinate",
               limit: float = LONGITUDE_LIMIT,
               config: Optional[CodecConfig] = None) -> float:
    """ Interprets a stored geographic double

    Input:
        raw         - 8 stored bytes
        name        - field name, used when reporting an anomaly
        limit       - absolute bound of a plausible value (90 or 180)
        config      - CodecConfig, controls the swap and the anomaly policy

    The 200.0 unavailable token is never reported.
    """
    config = config or default_config
    if config.correct_geo_halves:
        raw = swap_bit_halves(raw)
    value = struct.unpack('<d', raw)[0]
    if value not in (UNAVAILABLE_LATITUDE, UNAVAILABLE_LONGITUDE) and not abs(value) <= limit:
        _report_geo_anomaly(name, value, limit, config)
    return value


def encode_geo(value: float, config: Optional[CodecConfig] = None) -> bytes:
    config = config or default_config
    raw = struct.pack('<d', value)
    if config.correct_geo_halves:
        raw = swap_bit_halves(raw)
    return raw


def _report_geo_anomaly(name: str, value: float, limit: float, config: CodecConfig):
    if config.geo_anomaly == "raise":
        raise EncodingAnomaly(field_name=name, value=value)
    if config.geo_anomaly == "warn":
        logger.warning(f"EncodingAnomaly: {name} decoded to {value!r}, "
                       f"outside +/-{limit}")


# #### Stream Helpers ####

def stream_extent(stream: BinaryIO) -> int:
    here = stream.tell()
    end = stream.seek(0, 2)
    stream.seek(here, 0)
    return end


def read_exact(stream: BinaryIO, size: int, where: str = "") -> bytes:
    """ Reads exactly size bytes or raises Truncated"""
    if size <= 0:
        return b''
    data = stream.read(size)
    if len(data) != size:
        raise Truncated(needed=size, available=len(data), where=where)
    return data


def skip(stream: BinaryIO, size: int, where: str = ""):
    """ Seeks forward over size bytes that must exist"""
    if size <= 0:
        return
    here = stream.tell()
    available = stream_extent(stream) - here
    if size > available:
        raise Truncated(needed=size, available=available, where=where)
    stream.seek(here + size, 0)


def read_remaining(stream: BinaryIO, end: int) -> bytes:
    """ Reads from the current position up to the absolute offset end"""
    here = stream.tell()
    if end <= here:
        return b''
    return read_exact(stream, end - here, where="trailing bytes")


def read_array(stream: BinaryIO, dtype: str, count: int) -> np.ndarray:
    """ Reads a flat array of count samples, dtype like '<i2'"""
    dt = np.dtype(dtype)
    data = read_exact(stream, dt.itemsize * count, where=f"{count} x {dtype}")
    return np.frombuffer(data, dtype=dt).copy()


def write_array(stream: BinaryIO, values, dtype: str) -> int:
    samples = np.asarray(values, dtype=dtype)
    stream.write(samples.tobytes())
    return samples.size


def empty_array(dtype: str) -> np.ndarray:
    return np.zeros(0, dtype=dtype)


# #### Field Declarations ####

def _zero(fmt: str):
    if fmt.endswith('s'):
        return bytes(struct.calcsize('<' + fmt))
    if fmt in ('f', 'd'):
        return 0.0
    return 0


def km_field(fmt: str, units: Optional[Units] = None, default=attr.NOTHING,
             length: bool = False):
    """ attrs field carrying the struct code of its binary representation

    Fields are laid out in declaration order, packed little endian.
    length=True marks the field holding the byte length of its own block.
    """
    if default is attr.NOTHING:
        default = _zero(fmt)
    metadata = {MdK.FORMAT: fmt}
    if units is not None:
        metadata[MdK.UNITS] = units
    if length:
        metadata[MdK.LENGTH] = True
    return attr.ib(default=default, metadata=metadata)


def geo_field(limit: float):
    """ 64 bit coordinate stored with transposed halves"""
    return attr.ib(default=0.0, metadata={MdK.FORMAT: 'd',
                                          MdK.GEO_LIMIT: limit,
                                          MdK.UNITS: Units.DEGREES_DD})


def array_eq():
    """ attrs equality for numpy array fields"""
    return attr.cmp_using(eq=np.array_equal)


# #### Static Layout ####

@attr.s(auto_attribs=True, frozen=True)
class LayoutEntry:
    name: str
    fmt: str
    offset: int
    size: int
    geo_limit: Optional[float] = None

    @property
    def code(self) -> str:
        if self.geo_limit is not None:
            return '<8s'
        return '<' + self.fmt


class StaticLayout:
    """ Statically known field layout of an attrs block class

    Built once per class from the km_field/geo_field metadata. unpack()
    accepts data shorter than the layout, fields not fully covered by the
    data come back as None.
    """
    _cache: ClassVar[Dict[type, "StaticLayout"]] = {}

    def __init__(self, entries: List[LayoutEntry],
                 length_field: Optional[LayoutEntry] = None):
        self.entries = entries
        self.length_field = length_field
        self.size = sum(entry.size for entry in entries)
        self.geo_entries = [e for e in entries if e.geo_limit is not None]
        self._struct = struct.Struct('<' + ''.join(e.code[1:] for e in entries))

    @classmethod
    def of(cls, block_cls: type) -> "StaticLayout":
        layout = cls._cache.get(block_cls)
        if layout is None:
            layout = cls._from_attrs(block_cls)
            cls._cache[block_cls] = layout
        return layout

    @classmethod
    def _from_attrs(cls, block_cls: type) -> "StaticLayout":
        entries = list()
        length_field = None
        offset = 0
        for field in attr.fields(block_cls):
            fmt = field.metadata.get(MdK.FORMAT)
            if fmt is None:
                continue
            size = struct.calcsize('<' + fmt)
            entry = LayoutEntry(name=field.name, fmt=fmt, offset=offset, size=size,
                                geo_limit=field.metadata.get(MdK.GEO_LIMIT))
            if field.metadata.get(MdK.LENGTH):
                length_field = entry
            entries.append(entry)
            offset += size
        return cls(entries, length_field)

    @property
    def length_prefix(self) -> int:
        """ Bytes up to and including the length field"""
        if self.length_field is None:
            return 0
        return self.length_field.offset + self.length_field.size

    def read_length(self, data: bytes) -> int:
        return struct.unpack_from(self.length_field.code, data,
                                  self.length_field.offset)[0]

    def unpack(self, data: bytes, config: Optional[CodecConfig] = None) -> dict:
        values = dict()
        if len(data) >= self.size:
            for entry, value in zip(self.entries, self._struct.unpack_from(data)):
                values[entry.name] = value
        else:
            for entry in self.entries:
                if entry.offset + entry.size > len(data):
                    values[entry.name] = None
                else:
                    values[entry.name] = struct.unpack_from(entry.code, data,
                                                            entry.offset)[0]

        for entry in self.geo_entries:
            if values[entry.name] is not None:
                values[entry.name] = decode_geo(values[entry.name], name=entry.name,
                                                limit=entry.geo_limit, config=config)
        return values

    def pack(self, values: dict, config: Optional[CodecConfig] = None) -> bytes:
        chunks = list()
        for entry in self.entries:
            value = values.get(entry.name)
            if value is None:
                chunks.append(bytes(entry.size))
            elif entry.geo_limit is not None:
                chunks.append(encode_geo(value, config))
            else:
                chunks.append(struct.pack(entry.code, value))
        return b''.join(chunks)


# #### Time ####

def km_datetime(time_sec: int, time_nanosec: int = 0) -> datetime:
    """ Generates datetime (UTC, naive) from km time format"""
    return _epoch + timedelta(seconds=time_sec, microseconds=time_nanosec / 1000.0)


def km_time(date_time: datetime) -> Tuple[int, int]:
    """ Inverse of km_datetime, returns (seconds, nanoseconds)"""
    delta = date_time - _epoch
    seconds = delta.days * 86400 + delta.seconds
    return seconds, delta.microseconds * 1000
