import attr
import io
import logging

from abc import ABC, abstractmethod
from datetime import datetime
from typing import BinaryIO, Union

logger = logging.getLogger(__name__)


class AbstractChannel(ABC):
    """ Abstract seekable byte channel

    The codec never opens files itself. Readers and writers work against
    this boundary: read n bytes, write bytes, seek to an absolute offset,
    the current position and the total extent.
    """

    @abstractmethod
    def read(self, size: int) -> bytes:
        pass

    @abstractmethod
    def write(self, data: bytes) -> int:
        pass

    @abstractmethod
    def seek(self, offset: int) -> int:
        pass

    @property
    @abstractmethod
    def position(self) -> int:
        pass

    @property
    @abstractmethod
    def extent(self) -> int:
        pass


class FileChannel(AbstractChannel):
    """ Channel over an already open, seekable binary file object"""

    def __init__(self, file_obj: BinaryIO):
        if not file_obj.seekable():
            raise OSError("Channel requires a seekable file object")
        self.file = file_obj

    @classmethod
    def from_bytes(cls, data: bytes = b''):
        """ In memory channel, starts at offset 0"""
        return cls(io.BytesIO(data))

    def read(self, size: int) -> bytes:
        return self.file.read(size)

    def write(self, data: bytes) -> int:
        return self.file.write(data)

    def seek(self, offset: int) -> int:
        return self.file.seek(offset, 0)

    @property
    def position(self) -> int:
        return self.file.tell()

    @property
    def extent(self) -> int:
        # Not cached, writers sharing the file object can extend it
        here = self.file.tell()
        end = self.file.seek(0, 2)
        self.file.seek(here, 0)
        return end

    def getvalue(self) -> bytes:
        """ Complete channel content, restores the position"""
        here = self.file.tell()
        self.file.seek(0, 0)
        data = self.file.read()
        self.file.seek(here, 0)
        return data


def as_channel(source: Union[AbstractChannel, BinaryIO, bytes]) -> AbstractChannel:
    """ Wraps file objects and byte strings, passes channels through"""
    if isinstance(source, AbstractChannel):
        return source
    if isinstance(source, (bytes, bytearray)):
        return FileChannel.from_bytes(bytes(source))
    return FileChannel(source)


@attr.s(auto_attribs=True)
class MapEntry:
    """ Location of one record in a stream

    Private class for storing datagram record location information, produced
    by StreamCursor.map_records.
    """

    file_location: int
    record_datetime: datetime
    record_size: int
    version: int
