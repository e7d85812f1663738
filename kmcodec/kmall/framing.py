import attr
import logging

from typing import BinaryIO, List, Optional, Sequence, Tuple

from kmcodec.internal.config import CodecConfig
from kmcodec.internal.errors import MalformedRecord
from kmcodec.kmall.binary import StaticLayout, read_exact, skip

logger = logging.getLogger(__name__)


class LengthFramedBlockCodec:
    """ Codec for blocks that start with their own byte length

    The declared length L and the statically known layout size S may differ:
        L > S   - newer producer, unknown trailing fields are skipped
        L < S   - older producer, fields past L are absent and decode as None
    Either way the stream is left at exactly origin + L.

    Elements of a sized array carry no length field of their own, their
    declared length comes from a sibling field and is passed in.
    """

    @staticmethod
    def decode(stream: BinaryIO, block_cls: type, declared_length: Optional[int] = None,
               config: Optional[CodecConfig] = None):
        layout = StaticLayout.of(block_cls)
        origin = stream.tell()

        if declared_length is None:
            if layout.length_field is None:
                raise TypeError(f"{block_cls.__name__} has no length field, "
                                f"a declared length is required")
            prefix = read_exact(stream, layout.length_prefix, where=block_cls.__name__)
            declared_length = layout.read_length(prefix)
            if declared_length < layout.length_prefix:
                raise MalformedRecord(f"{block_cls.__name__} at {origin} declares "
                                      f"{declared_length} bytes, shorter than its "
                                      f"length field")
            body = read_exact(stream, min(declared_length, layout.size) - len(prefix),
                              where=block_cls.__name__)
            data = prefix + body
        else:
            data = read_exact(stream, min(declared_length, layout.size),
                              where=block_cls.__name__)

        if declared_length > layout.size:
            skip(stream, declared_length - layout.size, where=block_cls.__name__)
        if declared_length != layout.size:
            logger.debug(f"Size reconciled: {block_cls.__name__} declares "
                         f"{declared_length} bytes, layout has {layout.size}")

        # noinspection PyArgumentList
        return block_cls(**layout.unpack(data, config))

    @staticmethod
    def encode(stream: BinaryIO, block, declared_length: Optional[int] = None,
               config: Optional[CodecConfig] = None) -> int:
        """ Writes the block truncated or zero padded to its declared length

        Without an explicit declared_length, the block's own length field is
        used (layout size if that is None). Returns the bytes written.
        """
        layout = StaticLayout.of(type(block))
        values = attr.asdict(block, recurse=False)
        if declared_length is None:
            if layout.length_field is not None:
                declared_length = values[layout.length_field.name]
            if declared_length is None:
                declared_length = layout.size
        if layout.length_field is not None:
            values[layout.length_field.name] = declared_length

        data = layout.pack(values, config)
        data = data[:declared_length].ljust(declared_length, b'\x00')
        stream.write(data)
        return declared_length


def read_fixed(stream: BinaryIO, block_cls: type, config: Optional[CodecConfig] = None):
    """ Fixed size block, no reconciliation"""
    layout = StaticLayout.of(block_cls)
    data = read_exact(stream, layout.size, where=block_cls.__name__)
    # noinspection PyArgumentList
    return block_cls(**layout.unpack(data, config))


def write_fixed(stream: BinaryIO, block, config: Optional[CodecConfig] = None) -> int:
    layout = StaticLayout.of(type(block))
    return stream.write(layout.pack(attr.asdict(block, recurse=False), config))


class VariableCountArrayCodec:
    """ Codec for sequences sized by sibling fields

    count comes from a previously decoded field. element_size is the sibling
    'bytes per element' field, or None for the layout size of the element.
    tally names a per element field summed over the sequence, used to size
    a flat array that follows the whole sequence. max_count is the format
    maximum of count, a larger count is a MalformedRecord.
    """

    @staticmethod
    def decode(stream: BinaryIO, element_cls: type, count: Optional[int],
               element_size: Optional[int] = None, tally: Optional[str] = None,
               max_count: Optional[int] = None,
               config: Optional[CodecConfig] = None) -> Tuple[List, int]:
        if max_count is not None:
            check_bound(f"{element_cls.__name__} count", count, max_count)
        if element_size is None:
            element_size = StaticLayout.of(element_cls).size

        elements = list()
        total = 0
        for _ in range(count or 0):
            element = LengthFramedBlockCodec.decode(stream, element_cls,
                                                    declared_length=element_size,
                                                    config=config)
            if tally is not None:
                total += getattr(element, tally) or 0
            elements.append(element)
        return elements, total

    @staticmethod
    def encode(stream: BinaryIO, elements: Sequence, element_size: Optional[int] = None,
               tally: Optional[str] = None, config: Optional[CodecConfig] = None) -> int:
        total = 0
        for element in elements:
            size = element_size
            if size is None:
                size = StaticLayout.of(type(element)).size
            LengthFramedBlockCodec.encode(stream, element, declared_length=size,
                                          config=config)
            if tally is not None:
                total += getattr(element, tally) or 0
        return total


def check_count(name: str, declared: Optional[int], actual: int):
    """ Raises ValueError when a count field disagrees with its sequence"""
    if (declared or 0) != actual:
        raise ValueError(f"{name} is {declared} but {actual} elements are present")


def check_bound(name: str, count: Optional[int], maximum: int):
    """ Raises MalformedRecord when a decoded count exceeds its format maximum"""
    if (count or 0) > maximum:
        raise MalformedRecord(f"{name} is {count}, format maximum is {maximum}")
