import attr
import numpy as np
import pytest

from kmcodec._internal.channel import FileChannel
from kmcodec.internal.errors import GrowthViolation
from kmcodec.kmall.datagrams import (MRZ, SPO, HeaderOnly, KmallHeader, MRZSounding,
                                     encode_record)
from kmcodec.kmall.stream_cursor import StreamCursor
from kmcodec.kmall.writer import RandomAccessWriter

from conftest import make_mrz, make_spo, sentinel_bytes


@pytest.fixture
def channel(scenario_bytes):
    return FileChannel.from_bytes(scenario_bytes + encode_record(make_spo()))


def _mrz_origin(spo) -> int:
    return spo.header.size + 20


def test_append_returns_offsets(spo, mrz):
    writer = RandomAccessWriter(FileChannel.from_bytes())
    sentinel = HeaderOnly(header=KmallHeader())

    offsets = writer.append_all([spo, sentinel, mrz])
    spo_size = len(encode_record(spo))
    assert offsets == [0, spo_size, spo_size + 20]
    assert writer.channel.getvalue() == (encode_record(spo) + sentinel_bytes()
                                         + encode_record(mrz))
    assert writer.location == len(writer.channel.getvalue())


def test_appended_stream_reads_back(spo, mrz):
    writer = RandomAccessWriter(FileChannel.from_bytes())
    writer.append_all([mrz, spo, mrz])
    cursor = StreamCursor(writer.channel)
    cursor.seek(0)
    assert list(cursor.read_all()) == [mrz, spo, mrz]


def test_patch_same_size(channel, spo):
    cursor = StreamCursor(channel)
    mrz = cursor.read_at(_mrz_origin(spo))
    mrz.ping_info.waterline = -1.5
    tail = channel.getvalue()[mrz.origin + mrz.header.size:]

    writer = RandomAccessWriter(channel)
    assert writer.patch(mrz) == mrz.origin
    assert writer.location == mrz.origin + mrz.header.size

    assert cursor.read_at(mrz.origin).ping_info.waterline == -1.5
    assert channel.getvalue()[mrz.origin + mrz.header.size:] == tail


def test_shorter_patch_keeps_slot(channel, spo):
    cursor = StreamCursor(channel)
    mrz = cursor.read_at(_mrz_origin(spo))
    slot = mrz.header.size
    before = channel.getvalue()

    shorter = make_mrz(si_counts=(3, 3))
    writer = RandomAccessWriter(channel)
    writer.patch(shorter, offset=mrz.origin)

    after = channel.getvalue()
    assert len(after) == len(before)
    assert after[:mrz.origin] == before[:mrz.origin]
    assert after[mrz.origin + slot:] == before[mrz.origin + slot:]

    patched = cursor.read_at(mrz.origin)
    assert patched.header.size == slot
    assert len(patched.soundings) == 2
    assert len(patched.seabed_samples) == 6

    # Traversal continues with the record after the slot
    cursor.seek(0)
    assert [r.header.id for r in cursor.read_all()] == [b'#SPO', b'#MRZ', b'#SPO']


def test_growth_rejected_before_writing(channel, spo):
    cursor = StreamCursor(channel)
    mrz = cursor.read_at(_mrz_origin(spo))
    before = channel.getvalue()

    mrz.soundings.append(MRZSounding(index=3))
    mrz.rx_info.max_number_soundings += 1
    writer = RandomAccessWriter(channel)
    with pytest.raises(GrowthViolation) as exc_info:
        writer.patch(mrz)

    assert exc_info.value.offset == mrz.origin
    assert exc_info.value.slot_size == mrz.header.size
    assert exc_info.value.new_size > mrz.header.size
    assert channel.getvalue() == before


def test_patch_uses_stored_length_not_record_header(channel, spo):
    cursor = StreamCursor(channel)
    mrz = cursor.read_at(_mrz_origin(spo))
    claimed = attr.evolve(mrz, header=attr.evolve(mrz.header, size=mrz.header.size * 2))

    RandomAccessWriter(channel).patch(claimed)
    assert cursor.read_at(mrz.origin).header.size == mrz.header.size


def test_patch_without_origin(mrz):
    writer = RandomAccessWriter(FileChannel.from_bytes(encode_record(mrz)))
    with pytest.raises(ValueError):
        writer.patch(mrz)


def test_sentinel_patch(channel, spo):
    writer = RandomAccessWriter(channel)
    sentinel = HeaderOnly(header=KmallHeader())
    assert writer.patch(sentinel, offset=spo.header.size) == spo.header.size

    with pytest.raises(ValueError):
        writer.patch(sentinel, offset=0)


def test_read_then_patch_on_shared_channel(channel):
    cursor = StreamCursor(channel)
    writer = RandomAccessWriter(channel)

    seen = list()
    for record in cursor.read_all():
        if isinstance(record, SPO):
            record.sensor_data.sog = 0.0
            writer.patch(record)
        seen.append(record.header.id)
    assert seen == [b'#SPO', b'#MRZ', b'#SPO']

    cursor.seek(0)
    assert [r.sensor_data.sog for r in cursor.read_all(b'#SPO')] == [0.0, 0.0]
    cursor.seek(0)
    assert isinstance(list(cursor.read_all(b'#MRZ'))[0], MRZ)


def test_slot_size_at(channel, spo, mrz):
    writer = RandomAccessWriter(channel)
    assert writer.slot_size_at(0) == spo.header.size
    assert writer.slot_size_at(spo.header.size) == 20
    assert writer.slot_size_at(_mrz_origin(spo)) == mrz.header.size


def test_rejected_patch_keeps_reader_position(spo):
    channel = FileChannel.from_bytes(encode_record(make_mrz()) + encode_record(spo))
    cursor = StreamCursor(channel)
    writer = RandomAccessWriter(channel)

    mrz = cursor.read_record()
    after_mrz = cursor.location
    mrz.soundings.append(MRZSounding(index=3, si_num_samples=50))
    mrz.seabed_samples = np.concatenate([mrz.seabed_samples, np.zeros(50, dtype='<i2')])
    mrz.rx_info.max_number_soundings += 1
    with pytest.raises(GrowthViolation):
        writer.patch(mrz)

    assert cursor.location == after_mrz
    assert cursor.read_record() == spo


def test_rejected_sentinel_patch_keeps_reader_position(channel, spo):
    cursor = StreamCursor(channel)
    writer = RandomAccessWriter(channel)

    assert cursor.read_record() == spo
    with pytest.raises(ValueError):
        writer.patch(HeaderOnly(header=KmallHeader()), offset=0)
    assert cursor.location == spo.header.size
    assert isinstance(cursor.read_record(), MRZ)
