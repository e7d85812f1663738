class KmallError(Exception):
    """ Base class for every error raised while decoding or encoding records"""


class UnsupportedType(KmallError, KeyError):
    """ Record tag is not in the decoder registry

    Only the record being decoded is affected. The stream cursor is left at
    the record origin so the caller can fall back to header-only reading.
    """

    def __init__(self, tag: bytes, origin=None):
        self.tag = tag
        self.origin = origin
        super().__init__(f"Unsupported record type: {tag!r} at offset {origin}")

    def __str__(self):
        # KeyError quotes its argument
        return self.args[0]


class Truncated(KmallError, EOFError):
    """ Fewer bytes remain than a declared length requires

    Distinct from a clean end of stream, which only occurs exactly at a
    record boundary.
    """

    def __init__(self, needed: int, available: int, where: str = ""):
        self.needed = needed
        self.available = available
        msg = f"Truncated data: needed {needed} bytes, {available} available"
        if where:
            msg = f"{msg} ({where})"
        super().__init__(msg)


class GrowthViolation(KmallError, ValueError):
    """ A patch would overrun the slot of the record stored at the offset"""

    def __init__(self, offset: int, slot_size: int, new_size: int):
        self.offset = offset
        self.slot_size = slot_size
        self.new_size = new_size
        super().__init__(f"Patch at offset {offset} needs {new_size} bytes, "
                         f"slot holds {slot_size}")


class EncodingAnomaly(KmallError, ValueError):
    """ A geographic field decoded to an implausible value

    Raised (or logged, depending on configuration) when a coordinate is out
    of range after the bit-half correction. The field is left as decoded.
    """

    def __init__(self, field_name: str, value: float):
        self.field_name = field_name
        self.value = value
        super().__init__(f"EncodingAnomaly: {field_name} decoded to {value!r}")


class MalformedRecord(KmallError, ValueError):
    """ Structurally invalid content, e.g. a block length smaller than its
    own length field"""
