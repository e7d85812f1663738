import logging

from typing import BinaryIO, Dict, FrozenSet, Iterable, Iterator, List, Optional, Union

from kmcodec._internal.channel import AbstractChannel, MapEntry, as_channel
from kmcodec.internal.config import CodecConfig, default_config
from kmcodec.internal.errors import MalformedRecord, Truncated, UnsupportedType
from kmcodec.kmall.datagrams import (NULL_TAG, Datagram, HeaderOnly, KmallHeader,
                                     decode_record, kmall_dispatch)

logger = logging.getLogger(__name__)

RecordTypes = Optional[Union[bytes, str, Iterable[Union[bytes, str]]]]


def normalize_types(record_types: RecordTypes) -> Optional[FrozenSet[bytes]]:
    """ Allow-list as a set of byte tags, None means everything"""
    if record_types is None:
        return None
    if isinstance(record_types, (bytes, str)):
        record_types = [record_types]
    return frozenset(t.encode('ascii') if isinstance(t, str) else bytes(t)
                     for t in record_types)


class StreamCursor:
    """ Sequential, filtering reader over a KMALL record stream

    The cursor works on the channel position directly, so a RandomAccessWriter
    sharing the channel can patch the record just read before the next read.
    Sentinel headers are consumed silently unless NULL_TAG is allow-listed.

    Records not in the allow-list only have their header read, the payload
    is skipped with a seek.
    """

    def __init__(self, source: Union[AbstractChannel, BinaryIO, bytes],
                 record_types: RecordTypes = None,
                 config: Optional[CodecConfig] = None):
        self.channel = as_channel(source)
        self.record_types = normalize_types(record_types)
        self.config = config or default_config

    @property
    def location(self) -> int:
        return self.channel.position

    def seek(self, offset: int):
        self.channel.seek(offset)

    def read_record(self, record_types: RecordTypes = None) -> Optional[Datagram]:
        """ Reads the next record

        Input:
            record_types    - allow-list for this call, defaults to the one
                                given at construction

        Output:
            datagram object, or None at a clean end of stream
        """
        wanted = self._wanted(record_types)
        while True:
            origin = self.channel.position
            header = self._read_header()
            if header is None:
                logger.debug(f"End of stream at {origin}")
                return None

            if header.is_null:
                self.channel.seek(origin + header.slot_size)
                if wanted is not None and NULL_TAG in wanted:
                    # noinspection PyArgumentList
                    return HeaderOnly(header=header, origin=origin)
                logger.debug(f"Sentinel header at {origin} skipped")
                continue

            self._check_slot(origin, header)
            if wanted is not None and header.id not in wanted:
                logger.debug(f"Skipped {header.id!r} at {origin}, {header.size} bytes")
                self.channel.seek(origin + header.size)
                continue

            return self._decode(origin, header)

    def read_all(self, record_types: RecordTypes = None) -> Iterator[Datagram]:
        """ Lazily reads records until the end of the stream

        Errors stop the iteration and propagate, nothing is dropped silently.
        """
        while True:
            record = self.read_record(record_types)
            if record is None:
                return
            yield record

    def __iter__(self):
        return self.read_all()

    def read_header(self) -> Optional[HeaderOnly]:
        """ Reads the next header and skips its payload, None at the end"""
        origin = self.channel.position
        header = self._read_header()
        if header is None:
            return None
        if not header.is_null:
            self._check_slot(origin, header)
        self.channel.seek(origin + header.slot_size)
        # noinspection PyArgumentList
        return HeaderOnly(header=header, origin=origin)

    def read_all_headers(self, record_types: RecordTypes = None) -> Iterator[HeaderOnly]:
        wanted = self._wanted(record_types)
        while True:
            stub = self.read_header()
            if stub is None:
                return
            if wanted is None:
                if stub.header.is_null:
                    continue
            elif stub.header.id not in wanted:
                continue
            yield stub

    def read_at(self, offset: int) -> Datagram:
        """ Decodes the record starting at offset, whatever its type"""
        self.channel.seek(offset)
        header = self._read_header()
        if header is None:
            raise Truncated(needed=KmallHeader.header_size, available=0,
                            where=f"offset {offset}")
        if header.is_null:
            self.channel.seek(offset + header.slot_size)
            # noinspection PyArgumentList
            return HeaderOnly(header=header, origin=offset)
        self._check_slot(offset, header)
        return self._decode(offset, header)

    def map_records(self) -> Dict[bytes, List[MapEntry]]:
        """ Maps the records in the stream

        Output is a dictionary where:
            Keys                - record id ex. b'#MRZ'
            Values              - list of MapEntry, in chronological order

        The stream position is restored afterwards.
        """
        here = self.channel.position
        self.channel.seek(0)
        dg_map = dict()
        try:
            for stub in self.read_all_headers():
                map_entry = MapEntry(file_location=stub.origin,
                                     record_datetime=stub.record_datetime,
                                     record_size=stub.header.size,
                                     version=stub.header.version)
                dg_map.setdefault(stub.header.id, list()).append(map_entry)
        finally:
            self.channel.seek(here)

        for map_id, records in dg_map.items():
            dg_map[map_id] = sorted(records, key=lambda x: x.record_datetime)
        logger.debug(f"Stream map success, {sum(map(len, dg_map.values()))} records")
        return dg_map

    # Private Methods
    def _wanted(self, record_types: RecordTypes) -> Optional[FrozenSet[bytes]]:
        if record_types is None:
            return self.record_types
        return normalize_types(record_types)

    def _read_header(self) -> Optional[KmallHeader]:
        origin = self.channel.position
        available = self.channel.extent - origin
        if available <= 0:
            return None
        chunk = self.channel.read(KmallHeader.header_size)
        if len(chunk) < KmallHeader.header_size:
            raise Truncated(needed=KmallHeader.header_size, available=len(chunk),
                            where=f"header at {origin}")
        header, _ = KmallHeader.parse(chunk)
        return header

    def _check_slot(self, origin: int, header: KmallHeader):
        if header.size < KmallHeader.header_size:
            raise MalformedRecord(f"{header.id!r} at {origin} declares {header.size} "
                                  f"bytes, less than a header")
        available = self.channel.extent - origin
        if header.size > available:
            raise Truncated(needed=header.size, available=available,
                            where=f"{header.id!r} at {origin}")

    def _decode(self, origin: int, header: KmallHeader) -> Datagram:
        if header.id not in kmall_dispatch:
            self.channel.seek(origin)
            raise UnsupportedType(header.id, origin)

        self.channel.seek(origin)
        data = self.channel.read(header.size)
        if len(data) < header.size:
            raise Truncated(needed=header.size, available=len(data),
                            where=f"{header.id!r} at {origin}")
        record = decode_record(data, self.config)
        record.origin = origin
        self.channel.seek(origin + header.size)
        logger.debug(f" Datagram ID: {header.id.decode('ascii', 'replace'):10}"
                     f"Size: {header.size: 10} Offset: {origin}")
        return record
