import attr
import logging

from typing import BinaryIO, Iterable, List, Optional, Union

from kmcodec._internal.channel import AbstractChannel, as_channel
from kmcodec.internal.config import CodecConfig, default_config
from kmcodec.internal.errors import GrowthViolation, KmallError, Truncated
from kmcodec.kmall.datagrams import Datagram, KmallHeader, encode_record

logger = logging.getLogger(__name__)


class RandomAccessWriter:
    """ Appends records or patches them in place

    Patch-at-offset never writes past the slot of the record stored at the
    offset: the stored declared length is read first and a record that does
    not fit is rejected with GrowthViolation before any byte is written.
    A record that encodes shorter is padded out to the whole slot, keeping
    the declared length of the slot, so the stream stays traversable.
    """

    def __init__(self, source: Union[AbstractChannel, BinaryIO, bytes],
                 config: Optional[CodecConfig] = None):
        self.channel = as_channel(source)
        self.config = config or default_config

    @property
    def location(self) -> int:
        return self.channel.position

    def seek(self, offset: int):
        self.channel.seek(offset)

    def append(self, record: Datagram) -> int:
        """ Writes the record at the current position, returns that offset"""
        data = encode_record(record, self.config)
        offset = self.channel.position
        self.channel.write(data)
        self._pad_to_position()
        logger.debug(f"Appended {record.header.id!r} at {offset}, {len(data)} bytes")
        return offset

    def append_all(self, records: Iterable[Datagram]) -> List[int]:
        return [self.append(record) for record in records]

    def patch(self, record: Datagram, offset: Optional[int] = None) -> int:
        """ Overwrites the record stored at offset (default: record.origin)

        Output:
            offset          - where the record was written

        The writer is left at the end of the slot, which is where a reader
        sharing the channel continues. A rejected patch leaves the channel
        position as it was before the call.
        """
        if offset is None:
            offset = record.origin
        if offset is None:
            raise ValueError("Record has no origin offset, append it instead")

        here = self.channel.position
        try:
            slot = self.slot_size_at(offset)
            if record.header.is_null and slot != KmallHeader.header_size:
                raise ValueError(f"A sentinel header cannot replace the {slot} byte "
                                 f"record at {offset}")
            if not record.header.is_null:
                record = attr.evolve(record, header=attr.evolve(record.header,
                                                                 size=slot))
            data = encode_record(record, self.config)
            if len(data) > slot:
                raise GrowthViolation(offset=offset, slot_size=slot, new_size=len(data))
        except (KmallError, ValueError, TypeError):
            self.channel.seek(here)
            raise

        self.channel.seek(offset)
        self.channel.write(data)
        self._pad_to_position()
        logger.debug(f"Patched {record.header.id!r} at {offset}, {slot} bytes")
        return offset

    def slot_size_at(self, offset: int) -> int:
        """ Declared length of the record stored at offset"""
        self.channel.seek(offset)
        chunk = self.channel.read(KmallHeader.header_size)
        if len(chunk) < KmallHeader.header_size:
            raise Truncated(needed=KmallHeader.header_size, available=len(chunk),
                            where=f"header at {offset}")
        header, _ = KmallHeader.parse(chunk)
        return header.slot_size

    def _pad_to_position(self):
        # Storage must reach the furthest position written
        position = self.channel.position
        if position > self.channel.extent:
            self.channel.seek(position - 1)
            self.channel.write(b'\x00')
