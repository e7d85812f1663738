import io

import pytest

from kmcodec._internal.channel import FileChannel
from kmcodec.internal.errors import MalformedRecord, Truncated, UnsupportedType
from kmcodec.kmall.datagrams import (MRZ, NULL_TAG, SPO, HeaderOnly, KmallHeader,
                                     encode_record)
from kmcodec.kmall.stream_cursor import StreamCursor, normalize_types

from conftest import make_mrz, make_spo, make_svp, sentinel_bytes, unknown_record_bytes


class CountingChannel(FileChannel):
    """ Channel counting the payload bytes handed out by read()"""

    def __init__(self, data: bytes):
        super().__init__(io.BytesIO(data))
        self.bytes_read = 0

    def read(self, size: int) -> bytes:
        data = super().read(size)
        self.bytes_read += len(data)
        return data


def test_unfiltered_read_skips_sentinel(scenario_bytes, spo, mrz):
    cursor = StreamCursor(scenario_bytes)
    records = list(cursor.read_all())

    assert [type(r) for r in records] == [SPO, MRZ]
    assert records == [spo, mrz]
    assert records[0].origin == 0
    assert records[1].origin == spo.header.size + 20
    assert cursor.location == len(scenario_bytes)


def test_filtered_read(scenario_bytes):
    cursor = StreamCursor(scenario_bytes)
    records = list(cursor.read_all(b'#MRZ'))

    assert len(records) == 1
    assert len(records[0].soundings) == 3
    assert len(records[0].seabed_samples) == 10


def test_filter_given_at_construction(scenario_bytes):
    cursor = StreamCursor(scenario_bytes, record_types=['#SPO'])
    assert [r.header.id for r in cursor] == [b'#SPO']


def test_truncated_stream(scenario_bytes):
    cursor = StreamCursor(scenario_bytes[:-1])
    with pytest.raises(Truncated):
        list(cursor.read_all())


def test_truncated_header():
    cursor = StreamCursor(encode_record(make_spo()) + bytes(10))
    assert isinstance(cursor.read_record(), SPO)
    with pytest.raises(Truncated):
        cursor.read_record()


def test_clean_end_of_stream():
    cursor = StreamCursor(b'')
    assert cursor.read_record() is None
    assert list(cursor.read_all()) == []


def test_filtered_records_are_not_read():
    spo_data = encode_record(make_spo())
    mrz_data = encode_record(make_mrz())
    channel = CountingChannel(spo_data + sentinel_bytes() + mrz_data + spo_data)
    cursor = StreamCursor(channel)

    records = list(cursor.read_all(b'#MRZ'))
    assert len(records) == 1
    # Three headers, the sentinel and the wanted record
    assert channel.bytes_read == 3 * 20 + 20 + len(mrz_data)
    assert cursor.location == channel.extent


def test_sentinel_returned_when_allow_listed(scenario_bytes, spo):
    cursor = StreamCursor(scenario_bytes)
    records = list(cursor.read_all([NULL_TAG, b'#SPO']))

    assert [type(r) for r in records] == [SPO, HeaderOnly]
    assert records[1].header.is_null
    assert records[1].origin == spo.header.size


def test_unsupported_type_leaves_cursor_at_origin(spo, mrz):
    spo_data = encode_record(spo)
    stream = spo_data + unknown_record_bytes(b'#XYZ') + encode_record(mrz)
    cursor = StreamCursor(stream)

    assert cursor.read_record() == spo
    with pytest.raises(UnsupportedType) as exc_info:
        cursor.read_record()
    assert exc_info.value.tag == b'#XYZ'
    assert exc_info.value.origin == len(spo_data)
    assert cursor.location == len(spo_data)

    stub = cursor.read_header()
    assert stub.header.id == b'#XYZ'
    assert stub.origin == len(spo_data)
    assert cursor.read_record() == mrz


def test_unsupported_type_filtered_out(spo, mrz):
    stream = encode_record(spo) + unknown_record_bytes() + encode_record(mrz)
    cursor = StreamCursor(stream)
    assert list(cursor.read_all('#MRZ')) == [mrz]


def test_declared_size_below_header(spo):
    bad = KmallHeader(size=8, id=b'#SPO').pack()
    cursor = StreamCursor(bad + encode_record(spo))
    with pytest.raises(MalformedRecord):
        cursor.read_record()


def test_read_all_headers(scenario_bytes, spo, mrz):
    cursor = StreamCursor(scenario_bytes)
    stubs = list(cursor.read_all_headers())
    assert [s.header.id for s in stubs] == [b'#SPO', b'#MRZ']
    assert [s.header.size for s in stubs] == [spo.header.size, mrz.header.size]

    cursor.seek(0)
    stubs = list(cursor.read_all_headers([NULL_TAG]))
    assert len(stubs) == 1
    assert stubs[0].origin == spo.header.size


def test_read_at(scenario_bytes, spo, mrz):
    cursor = StreamCursor(scenario_bytes)
    origin = spo.header.size + 20

    record = cursor.read_at(origin)
    assert record == mrz
    assert record.origin == origin
    assert cursor.location == len(scenario_bytes)

    assert cursor.read_at(0) == spo
    assert cursor.read_at(spo.header.size).header.is_null


def test_map_records(spo, mrz):
    data = (encode_record(spo) + sentinel_bytes() + encode_record(mrz)
            + encode_record(make_svp()) + encode_record(spo))
    cursor = StreamCursor(data)
    cursor.seek(spo.header.size)

    dg_map = cursor.map_records()
    assert cursor.location == spo.header.size
    assert set(dg_map) == {b'#SPO', b'#MRZ', b'#SVP'}
    assert [e.file_location for e in dg_map[b'#SPO']] == [0, len(data) - spo.header.size]
    assert dg_map[b'#MRZ'][0].file_location == spo.header.size + 20
    assert dg_map[b'#MRZ'][0].record_size == mrz.header.size
    assert dg_map[b'#MRZ'][0].version == 1
    assert dg_map[b'#SVP'][0].record_datetime == spo.record_datetime


def test_cursor_over_file_object(tmp_path, scenario_bytes):
    path = tmp_path / "0001_20230501_123015.kmall"
    path.write_bytes(scenario_bytes)
    with open(path, 'rb') as file:
        cursor = StreamCursor(file)
        assert [r.header.id for r in cursor] == [b'#SPO', b'#MRZ']


def test_normalize_types():
    assert normalize_types(None) is None
    assert normalize_types('#MRZ') == frozenset([b'#MRZ'])
    assert normalize_types([b'#SPO', '#SKM']) == frozenset([b'#SPO', b'#SKM'])
