import attr
import io
import logging
import re
import struct

from datetime import datetime
from typing import BinaryIO, ClassVar, Dict, List, Optional

import numpy as np
from numpy.typing import NDArray

from kmcodec.internal.config import CodecConfig
from kmcodec.internal.errors import MalformedRecord, Truncated, UnsupportedType
from kmcodec.internal.metadata_mappings import MetadataKeys as MdK
from kmcodec.internal.metadata_mappings import Units
from kmcodec.kmall.binary import (LATITUDE_LIMIT, LONGITUDE_LIMIT, UNAVAILABLE_COURSE,
                                  UNAVAILABLE_LATITUDE, UNAVAILABLE_LONGITUDE,
                                  UNAVAILABLE_SPEED,
                                  StaticLayout, array_eq, empty_array, geo_field,
                                  km_datetime, km_field, km_time, read_array,
                                  read_exact, read_remaining, write_array)
from kmcodec.kmall.framing import (LengthFramedBlockCodec, VariableCountArrayCodec,
                                   check_bound, check_count, read_fixed, write_fixed)

logger = logging.getLogger(__name__)

NULL_TAG = b'\x00\x00\x00\x00'
TRAILER_FMT = '<I'
TRAILER_SIZE = struct.calcsize(TRAILER_FMT)

# Format maxima
MAX_NUM_BEAMS = 1024
MAX_EXTRA_DET = 1024
MAX_EXTRA_DET_CLASSES = 11
MAX_SIDESCAN_SAMP = 60000
MAX_NUM_TX_PULSES = 9
MAX_ATT_SAMPLES = 148
MAX_SVP_POINTS = 2000


# #### Datagram Objects ####
# *** Note: attrs classes cannot reference child classes before they are
# declared. As a result, all datagrams are organized as such:
#   class child class:  (sub structure, binary layout from km_field metadata)
#       ...
#
#   class parent class: (primary datagram, decode/encode the payload)
#       ...
#

# ### Datagram Header ###
@attr.s(auto_attribs=True)
class KmallHeader:
    """ KMALL Datagram Header Structure """
    header_fmt: ClassVar[str] = '<I4s2BH2I'
    desc: ClassVar[str] = "KMALL header"
    header_size: ClassVar[int] = struct.calcsize(header_fmt)

    size: int = attr.ib(default=0, metadata={MdK.UNITS: Units.BYTE})
    id: bytes = NULL_TAG
    version: int = 0
    system_id: int = 0
    sounder_id: int = 0
    time_sec: int = attr.ib(default=0, metadata={MdK.UNITS: Units.SECOND})
    time_nanosec: int = attr.ib(default=0, metadata={MdK.UNITS: Units.NANOSECOND})

    @classmethod
    def parse(cls, data: bytes, loc: int = 0):
        hdr_st = loc
        hdr_end = loc + cls.header_size
        if len(data) < hdr_end:
            raise Truncated(needed=cls.header_size, available=max(len(data) - loc, 0),
                            where="header")
        hdr_data = struct.unpack(cls.header_fmt, data[hdr_st:hdr_end])

        # noinspection PyArgumentList
        return cls(size=hdr_data[0],
                   id=hdr_data[1],
                   version=hdr_data[2],
                   system_id=hdr_data[3],
                   sounder_id=hdr_data[4],
                   time_sec=hdr_data[5],
                   time_nanosec=hdr_data[6]), hdr_end

    def pack(self) -> bytes:
        return struct.pack(self.header_fmt, self.size, self.id, self.version,
                           self.system_id, self.sounder_id, self.time_sec,
                           self.time_nanosec)

    @classmethod
    def for_type(cls, dg_id: bytes, version: int = 0, system_id: int = 0,
                 sounder_id: int = 0, date_time: Optional[datetime] = None):
        """ New header, size is filled in when the record is encoded"""
        time_sec, time_nanosec = (0, 0) if date_time is None else km_time(date_time)
        # noinspection PyArgumentList
        return cls(size=0, id=dg_id, version=version, system_id=system_id,
                   sounder_id=sounder_id, time_sec=time_sec, time_nanosec=time_nanosec)

    @property
    def is_null(self) -> bool:
        return self.id == NULL_TAG

    @property
    def slot_size(self) -> int:
        """ Bytes this record occupies in a stream"""
        return self.header_size if self.is_null else self.size

    @property
    def record_datetime(self) -> datetime:
        return km_datetime(self.time_sec, self.time_nanosec)


@attr.s(auto_attribs=True)
class Datagram:
    """ Parent of all records: header, payload attributes, stream origin

    origin is set by the stream cursor only and never takes part in equality.
    """
    dg_id: ClassVar[bytes] = NULL_TAG
    dg_version: ClassVar[int] = 0
    desc: ClassVar[str] = ""

    header: KmallHeader
    origin: Optional[int] = attr.ib(default=None, eq=False, kw_only=True)

    @classmethod
    def new(cls, date_time: Optional[datetime] = None, system_id: int = 0,
            sounder_id: int = 0, **fields):
        header = KmallHeader.for_type(cls.dg_id, version=cls.dg_version,
                                      system_id=system_id, sounder_id=sounder_id,
                                      date_time=date_time)
        # noinspection PyArgumentList
        return cls(header=header, **fields)

    @classmethod
    def decode(cls, stream: BinaryIO, header: KmallHeader,
               config: Optional[CodecConfig] = None):
        raise NotImplementedError

    def encode(self, stream: BinaryIO, config: Optional[CodecConfig] = None):
        raise NotImplementedError

    @property
    def record_datetime(self) -> datetime:
        return self.header.record_datetime


@attr.s(auto_attribs=True)
class HeaderOnly(Datagram):
    """ Header without payload: sentinel headers and header-only reads"""
    desc = "Header only stub"

    @classmethod
    def decode(cls, stream: BinaryIO, header: KmallHeader,
               config: Optional[CodecConfig] = None):
        # noinspection PyArgumentList
        return cls(header=header)

    def encode(self, stream: BinaryIO, config: Optional[CodecConfig] = None):
        if not self.header.is_null:
            raise TypeError(f"Header only record {self.header.id!r} has no payload "
                            f"to encode")


# ### Installation Datagrams ###
# ## Installation Common Datagrams ##
@attr.s(auto_attribs=True)
class IInfo:
    """ Installation Info, a child structure to IIP and IOP """
    num_bytes: int = km_field('H', Units.BYTE, default=6)
    info: int = km_field('H')
    status: int = km_field('H')


@attr.s(auto_attribs=True)
class TextDatagram(Datagram):
    """ Fixed info block followed by num_bytes - info size bytes of text"""
    info_cls: ClassVar[type] = IInfo

    @classmethod
    def decode(cls, stream: BinaryIO, header: KmallHeader,
               config: Optional[CodecConfig] = None):
        info = read_fixed(stream, cls.info_cls, config)
        text_sz = info.num_bytes - cls.info_size()
        if text_sz < 0:
            raise MalformedRecord(f"{header.id!r} text block declares {info.num_bytes} "
                                  f"bytes")
        text = read_exact(stream, text_sz, where="text").decode('utf-8', 'surrogateescape')
        # noinspection PyArgumentList
        return cls(header=header, info=info, text=text)

    def encode(self, stream: BinaryIO, config: Optional[CodecConfig] = None):
        raw = self.text.encode('utf-8', 'surrogateescape')
        check_count('num_bytes', self.info.num_bytes, self.info_size() + len(raw))
        write_fixed(stream, self.info, config)
        stream.write(raw)

    @classmethod
    def info_size(cls) -> int:
        return StaticLayout.of(cls.info_cls).size

    @classmethod
    def from_text(cls, text: str, date_time: Optional[datetime] = None, **info_fields):
        """ New text record with a consistent byte count"""
        num_bytes = cls.info_size() + len(text.encode('utf-8', 'surrogateescape'))
        # noinspection PyArgumentList
        info = cls.info_cls(num_bytes=num_bytes, **info_fields)
        return cls.new(date_time=date_time, info=info, text=text)


# ## IIP ##
@attr.s(auto_attribs=True)
class IIP(TextDatagram):
    """ Installation parameters Parent Structure """
    dg_id = b'#IIP'
    desc = "Installation parameters and sensor setup"

    info: IInfo = attr.ib(factory=IInfo)
    text: str = ""

    def settings(self) -> Dict[str, str]:
        """ Comma separated key=value (or key:value) pairs of the installation text"""
        settings = dict()
        for group in self.text.replace('\n', '').split(','):
            parts = re.split(r'[=:]', group, maxsplit=1)
            if len(parts) == 2:
                settings[parts[0].strip()] = parts[1].strip()
        return settings


# ## IOP ##
@attr.s(auto_attribs=True)
class IOP(IIP):
    """ Runtime parameters, same structure as IIP """
    dg_id = b'#IOP'
    desc = "Runtime parameters as chosen by operator"


# ## IB ##
@attr.s(auto_attribs=True)
class IBInfo:
    """ BIST info, a child structure of IBE/IBR/IBS """
    num_bytes: int = km_field('H', Units.BYTE, default=6)
    bist_info: int = km_field('B')
    bist_style: int = km_field('B')
    bist_number: int = km_field('B')
    bist_status: int = km_field('b')


@attr.s(auto_attribs=True)
class IBE(TextDatagram):
    """ Built in test (BIST) error report """
    dg_id = b'#IBE'
    desc = "BIST error report"
    info_cls = IBInfo

    info: IBInfo = attr.ib(factory=IBInfo)
    text: str = ""


@attr.s(auto_attribs=True)
class IBR(IBE):
    """ BIST reply, same structure as IBE """
    dg_id = b'#IBR'
    desc = "BIST reply"


@attr.s(auto_attribs=True)
class IBS(IBE):
    """ BIST short reply, same structure as IBE """
    dg_id = b'#IBS'
    desc = "BIST short reply"


# ### Multibeam Datagrams ###
# ## Multibeam Common Structs ##
@attr.s(auto_attribs=True)
class MPartition:
    """ M Partition, a child structure of MRZ, MWC and FCF

    Partitions are reported as they are stored, they are not merged.
    """
    number_of_datagrams: int = km_field('H', default=1)
    datagram_number: int = km_field('H', default=1)

    @property
    def is_split(self) -> bool:
        return self.number_of_datagrams > 1


@attr.s(auto_attribs=True)
class MBody:
    """ M Body, a child Structure of MRZ, MWC and CHE """
    num_bytes: int = km_field('H', Units.BYTE, default=12, length=True)
    ping_count: int = km_field('H')
    num_rx_fans: int = km_field('B')
    rx_fan_index: int = km_field('B')
    num_swaths: int = km_field('B')
    along_position: int = km_field('B')
    tx_id: int = km_field('B')
    rx_id: int = km_field('B')
    num_rx_transducers: int = km_field('B')
    algorithm: int = km_field('B')


# ## MRZ ##
@attr.s(auto_attribs=True)
class MRZPingInfo:
    """Ping info, an MRZ child structure"""
    dict_beam_spacing: ClassVar[dict] = {
        0: "Equidistant",
        1: "Equiangle",
        2: "High density"
    }
    dict_depth_mode: ClassVar[dict] = {
        0: "Very shallow",
        1: "Shallow",
        2: "Medium",
        3: "Deep",
        4: "Deeper",
        5: "Very deep",
        6: "Extra deep",
        7: "Extreme deep",
    }
    dict_pulse_form: ClassVar[dict] = {
        0: "CW",
        1: "mix",
        2: "FM"
    }

    num_bytes: int = km_field('H', Units.BYTE, default=152, length=True)
    padding0: int = km_field('H')
    ping_rate: float = km_field('f', Units.HZ)
    beam_spacing: int = km_field('B')
    depth_mode: int = km_field('B')
    sub_depth_mode: int = km_field('B')
    distance_between_swath: int = km_field('B')
    detection_mode: int = km_field('B')
    pulse_form: int = km_field('B')
    padding1: int = km_field('H')
    frequency_mode: float = km_field('f', Units.HZ)
    frequency_limit_low: float = km_field('f', Units.HZ)
    frequency_limit_high: float = km_field('f', Units.HZ)
    pulse_length_max: float = km_field('f', Units.SECOND)
    pulse_length_effective: float = km_field('f', Units.SECOND)
    bandwidth_effective: float = km_field('f', Units.HZ)
    absorption_coeff: float = km_field('f', Units.DBPERMETER)
    sector_edge_port: float = km_field('f', Units.DEGREE)
    sector_edge_stbd: float = km_field('f', Units.DEGREE)
    sector_angular_coverage_port: float = km_field('f', Units.DEGREE)
    sector_angular_coverage_stbd: float = km_field('f', Units.DEGREE)
    sector_metric_coverage_port: int = km_field('h', Units.METER)
    sector_metric_coverage_stbd: int = km_field('h', Units.METER)
    mode_and_stabilisation: int = km_field('B')
    runtime_filter_1: int = km_field('B')
    runtime_filter_2: int = km_field('H')
    pipe_tracking: int = km_field('I')
    tx_array_size_used: float = km_field('f', Units.DEGREE)
    rx_array_size_used: float = km_field('f', Units.DEGREE)
    source_level: float = km_field('f', Units.DB)
    sl_ramp_time: int = km_field('H')
    padding2: int = km_field('H')
    yaw_angle: float = km_field('f', Units.DEGREE)
    number_tx_sectors: int = km_field('H')
    num_bytes_tx_sector: int = km_field('H', Units.BYTE, default=48)
    heading: float = km_field('f', Units.DEGREE)
    sound_speed_at_tx: float = km_field('f', Units.METERSPERSECOND)
    tx_depth: float = km_field('f', Units.METER)
    waterline: float = km_field('f', Units.METER)
    x_kmall2all: float = km_field('f', Units.METER)
    y_kmall2all: float = km_field('f', Units.METER)
    latlon_info: int = km_field('B')
    pos_sensor_status: int = km_field('B')
    att_sensor_status: int = km_field('B')
    padding3: int = km_field('B')
    latitude: float = geo_field(LATITUDE_LIMIT)
    longitude: float = geo_field(LONGITUDE_LIMIT)
    ellipsoid_height: float = km_field('f', Units.METER)
    # Version 1 onwards
    bs_corr_offset: float = km_field('f', Units.DB)
    lamberts_law_active: int = km_field('B')
    ice_window: int = km_field('B')
    padding4: int = km_field('H')

    @property
    def beam_spacing_desc(self) -> str:
        return self.dict_beam_spacing.get(self.beam_spacing, "Unknown")

    @property
    def pulse_form_desc(self) -> str:
        return self.dict_pulse_form.get(self.pulse_form, "Unknown")


@attr.s(auto_attribs=True)
class MRZTxSector:
    """ Transmit Sector Info, am MRZ child structure"""
    dict_sector_pulse_form: ClassVar[dict] = {
        0: "CW",
        1: "FM Up",
        2: "FM Down"
    }

    sector_index: int = km_field('B')
    array_index: int = km_field('B')
    sub_array: int = km_field('B')
    padding0: int = km_field('B')
    delay: float = km_field('f', Units.SECOND)
    tilt_angle: float = km_field('f', Units.DEGREE)
    nominal_source_level: float = km_field('f', Units.DB)
    focus_range: float = km_field('f', Units.METER)
    center_frequency: float = km_field('f', Units.HZ)
    bandwidth: float = km_field('f', Units.HZ)
    pulse_length_total: float = km_field('f', Units.SECOND)
    pulse_shading: int = km_field('B')
    waveform: int = km_field('B')
    padding1: int = km_field('H')
    # Version 1 onwards
    voltage_level: float = km_field('f', Units.DB)
    tracking_correction: float = km_field('f', Units.DB)
    pulse_length_effective: float = km_field('f', Units.SECOND)


@attr.s(auto_attribs=True)
class MRZRXInfo:
    """ Receiver info, an MRZ child structure"""
    num_bytes: int = km_field('H', Units.BYTE, default=32, length=True)
    max_number_soundings: int = km_field('H')
    valid_number_soundings: int = km_field('H')
    num_bytes_sounding: int = km_field('H', Units.BYTE, default=120)
    sample_rate_wc: float = km_field('f', Units.HZ)
    sample_rate_sb: float = km_field('f', Units.HZ)
    bs_normal: float = km_field('f', Units.DB)
    bs_oblique: float = km_field('f', Units.DB)
    extra_detect_flags: int = km_field('H')
    number_extra_detects: int = km_field('H')
    number_extra_detect_classes: int = km_field('H')
    num_bytes_ed_record: int = km_field('H', Units.BYTE, default=4)

    @property
    def number_of_soundings(self) -> int:
        return (self.max_number_soundings or 0) + (self.number_extra_detects or 0)


@attr.s(auto_attribs=True)
class MRZExtraDetectClass:
    number_detections_in_class: int = km_field('H')
    padding: int = km_field('b')
    alarm_flag: int = km_field('B')


@attr.s(auto_attribs=True)
class MRZSounding:
    """ One sounding, si_num_samples seabed image samples belong to it"""
    index: int = km_field('H')
    sector_index: int = km_field('B')
    detection_type: int = km_field('B')
    detection_method: int = km_field('B')
    reject_info_1: int = km_field('B')
    reject_info_2: int = km_field('B')
    post_processing: int = km_field('B')
    detect_class: int = km_field('B')
    confidence: int = km_field('B')
    padding: int = km_field('H')
    range_factor: float = km_field('f')
    quality_factor: float = km_field('f')
    uncertainty_vertical: float = km_field('f', Units.METER)
    uncertainty_horizontal: float = km_field('f', Units.METER)
    window: float = km_field('f', Units.SECOND)
    echo_length: float = km_field('f', Units.SECOND)
    wc_beam_number: int = km_field('H')
    wc_range_samples: int = km_field('H', Units.SAMPLE)
    wc_across_beam_angle: float = km_field('f', Units.DEGREE)
    mean_abs: float = km_field('f', Units.DBPERMETER)
    bs_type_1: float = km_field('f', Units.DB)
    bs_type_2: float = km_field('f', Units.DB)
    rx_sensitivity: float = km_field('f', Units.DB)
    source_level: float = km_field('f', Units.DB)
    calibration: float = km_field('f', Units.DB)
    tvg: float = km_field('f', Units.DB)
    beam_angle: float = km_field('f', Units.DEGREE)
    beam_angle_correction: float = km_field('f', Units.DEGREE)
    twtt: float = km_field('f', Units.SECOND)
    twtt_correction: float = km_field('f', Units.SECOND)
    delta_latitude: float = km_field('f', Units.DEGREES_DD)
    delta_longitude: float = km_field('f', Units.DEGREES_DD)
    z: float = km_field('f', Units.METER)
    y: float = km_field('f', Units.METER)
    x: float = km_field('f', Units.METER)
    beam_inc_angle_adj: float = km_field('f', Units.DEGREE)
    real_time_clean_info: int = km_field('H')
    si_start_range_samples: int = km_field('H', Units.SAMPLE)
    si_center_sample: int = km_field('H', Units.SAMPLE)
    si_num_samples: int = km_field('H', Units.SAMPLE)


@attr.s(auto_attribs=True)
class MRZ(Datagram):
    """ Parent datagram class, contains ping related data

    Seabed image samples of all soundings are stored as one flat int16
    array following the soundings, in sounding order.
    """
    dg_id = b'#MRZ'
    dg_version = 1
    desc = "Multibeam (M) raw range (R) and depth (Z)"

    partition: MPartition = attr.ib(factory=MPartition)
    mb_body: MBody = attr.ib(factory=MBody)
    ping_info: MRZPingInfo = attr.ib(factory=MRZPingInfo)
    tx_sectors: List[MRZTxSector] = attr.ib(factory=list)
    rx_info: MRZRXInfo = attr.ib(factory=MRZRXInfo)
    extra_detect_classes: List[MRZExtraDetectClass] = attr.ib(factory=list)
    soundings: List[MRZSounding] = attr.ib(factory=list)
    seabed_samples: NDArray = attr.ib(factory=lambda: empty_array('<i2'),
                                      eq=array_eq(),
                                      metadata={MdK.UNITS: Units.DB})

    @classmethod
    def decode(cls, stream: BinaryIO, header: KmallHeader,
               config: Optional[CodecConfig] = None):
        part = read_fixed(stream, MPartition, config)
        mbody = LengthFramedBlockCodec.decode(stream, MBody, config=config)
        ping_info = LengthFramedBlockCodec.decode(stream, MRZPingInfo, config=config)
        tx_sectors, _ = VariableCountArrayCodec.decode(
            stream, MRZTxSector, ping_info.number_tx_sectors,
            element_size=ping_info.num_bytes_tx_sector,
            max_count=MAX_NUM_TX_PULSES, config=config)
        rx_info = LengthFramedBlockCodec.decode(stream, MRZRXInfo, config=config)
        classes, _ = VariableCountArrayCodec.decode(
            stream, MRZExtraDetectClass, rx_info.number_extra_detect_classes,
            element_size=rx_info.num_bytes_ed_record,
            max_count=MAX_EXTRA_DET_CLASSES, config=config)
        soundings, num_si = VariableCountArrayCodec.decode(
            stream, MRZSounding, rx_info.number_of_soundings,
            element_size=rx_info.num_bytes_sounding, tally='si_num_samples',
            max_count=MAX_NUM_BEAMS + MAX_EXTRA_DET, config=config)
        check_bound("seabed image samples", num_si, MAX_SIDESCAN_SAMP)
        samples = read_array(stream, '<i2', num_si)
        logger.debug(f"MRZ ping {mbody.ping_count}: {len(tx_sectors)} sectors, "
                     f"{len(soundings)} soundings, {num_si} seabed image samples")

        # noinspection PyArgumentList
        return cls(header=header, partition=part, mb_body=mbody, ping_info=ping_info,
                   tx_sectors=tx_sectors, rx_info=rx_info,
                   extra_detect_classes=classes, soundings=soundings,
                   seabed_samples=samples)

    def encode(self, stream: BinaryIO, config: Optional[CodecConfig] = None):
        check_count('number_tx_sectors', self.ping_info.number_tx_sectors,
                    len(self.tx_sectors))
        check_count('number_extra_detect_classes',
                    self.rx_info.number_extra_detect_classes,
                    len(self.extra_detect_classes))
        check_count('max_number_soundings + number_extra_detects',
                    self.rx_info.number_of_soundings, len(self.soundings))
        num_si = sum(snd.si_num_samples or 0 for snd in self.soundings)
        check_count('sum of si_num_samples', num_si, len(self.seabed_samples))

        write_fixed(stream, self.partition, config)
        LengthFramedBlockCodec.encode(stream, self.mb_body, config=config)
        LengthFramedBlockCodec.encode(stream, self.ping_info, config=config)
        VariableCountArrayCodec.encode(stream, self.tx_sectors,
                                       element_size=self.ping_info.num_bytes_tx_sector,
                                       config=config)
        LengthFramedBlockCodec.encode(stream, self.rx_info, config=config)
        VariableCountArrayCodec.encode(stream, self.extra_detect_classes,
                                       element_size=self.rx_info.num_bytes_ed_record,
                                       config=config)
        VariableCountArrayCodec.encode(stream, self.soundings,
                                       element_size=self.rx_info.num_bytes_sounding,
                                       tally='si_num_samples', config=config)
        write_array(stream, self.seabed_samples, '<i2')

    def sounding_samples(self, index: int) -> np.ndarray:
        """ Seabed image samples of one sounding"""
        start = sum(snd.si_num_samples or 0 for snd in self.soundings[:index])
        count = self.soundings[index].si_num_samples or 0
        return self.seabed_samples[start:start + count]


# ## MWC ##
@attr.s(auto_attribs=True)
class MWCTxInfo:
    """ Water column transmit info, MWC child structure"""
    num_bytes: int = km_field('H', Units.BYTE, default=12, length=True)
    number_tx_sectors: int = km_field('H')
    num_bytes_tx_sector: int = km_field('H', Units.BYTE, default=16)
    padding: int = km_field('h')
    heave: float = km_field('f', Units.METER)


@attr.s(auto_attribs=True)
class MWCTxSector:
    tilt_angle: float = km_field('f', Units.DEGREE)
    center_frequency: float = km_field('f', Units.HZ)
    along_ship_beamwidth: float = km_field('f', Units.DEGREE)
    sector_index: int = km_field('H')
    padding: int = km_field('h')


@attr.s(auto_attribs=True)
class MWCRXInfo:
    """ Water column receiver info, MWC child structure"""
    dict_phase_flag: ClassVar[dict] = {
        0: "Off",
        1: "Low resolution",
        2: "High resolution"
    }

    num_bytes: int = km_field('H', Units.BYTE, default=16, length=True)
    number_beams: int = km_field('H')
    num_bytes_beam: int = km_field('B', Units.BYTE, default=16)
    phase_flag: int = km_field('B')
    tvg_function: int = km_field('B')
    tvg_offset: int = km_field('b', Units.DB)
    sample_rate: float = km_field('f', Units.HZ)
    sound_speed: float = km_field('f', Units.METERSPERSECOND)


@attr.s(auto_attribs=True)
class MWCBeamInfo:
    beam_pointing_angle: float = km_field('f', Units.DEGREE)
    starting_sample: int = km_field('H', Units.SAMPLE)
    detection_sample: int = km_field('H', Units.SAMPLE)
    tx_sector_number: int = km_field('H')
    number_of_samples: int = km_field('H')
    high_res_detect_sample: float = km_field('f', Units.SAMPLE)


@attr.s(auto_attribs=True)
class MWCBeam:
    """ One water column beam: info, then its amplitude and phase samples"""
    info: MWCBeamInfo = attr.ib(factory=MWCBeamInfo)
    amplitude: NDArray = attr.ib(factory=lambda: empty_array('<i1'), eq=array_eq())
    phase: NDArray = attr.ib(factory=lambda: empty_array('<i1'), eq=array_eq())

    @classmethod
    def decode(cls, stream: BinaryIO, num_bytes_beam: int, phase_dtype: Optional[str],
               config: Optional[CodecConfig] = None):
        info = LengthFramedBlockCodec.decode(stream, MWCBeamInfo,
                                             declared_length=num_bytes_beam, config=config)
        num_samples = info.number_of_samples or 0
        amplitude = read_array(stream, '<i1', num_samples)
        if phase_dtype is None:
            phase = empty_array('<i1')
        else:
            phase = read_array(stream, phase_dtype, num_samples)
        # noinspection PyArgumentList
        return cls(info=info, amplitude=amplitude, phase=phase)

    def encode(self, stream: BinaryIO, num_bytes_beam: int, phase_dtype: Optional[str],
               config: Optional[CodecConfig] = None):
        num_samples = self.info.number_of_samples or 0
        check_count('number_of_samples', num_samples, len(self.amplitude))
        check_count('phase samples', 0 if phase_dtype is None else num_samples,
                    len(self.phase))
        LengthFramedBlockCodec.encode(stream, self.info, declared_length=num_bytes_beam,
                                      config=config)
        write_array(stream, self.amplitude, '<i1')
        if phase_dtype is not None:
            write_array(stream, self.phase, phase_dtype)

    @property
    def amplitude_db(self) -> np.ndarray:
        """ Amplitude in 0.5 dB steps"""
        return self.amplitude / 2.0


@attr.s(auto_attribs=True)
class MWC(Datagram):
    """ Water column datagram, parent class """
    dg_id = b'#MWC'
    dg_version = 1
    desc = "Multibeam (M) water (W) column (C)"
    phase_dtypes: ClassVar[dict] = {0: None, 1: '<i1', 2: '<i2'}

    partition: MPartition = attr.ib(factory=MPartition)
    mb_body: MBody = attr.ib(factory=MBody)
    tx_info: MWCTxInfo = attr.ib(factory=MWCTxInfo)
    tx_sectors: List[MWCTxSector] = attr.ib(factory=list)
    rx_info: MWCRXInfo = attr.ib(factory=MWCRXInfo)
    beams: List[MWCBeam] = attr.ib(factory=list)

    @classmethod
    def phase_dtype(cls, phase_flag: Optional[int]) -> Optional[str]:
        try:
            return cls.phase_dtypes[phase_flag or 0]
        except KeyError:
            raise MalformedRecord(f"Phase flag must be 0/1/2. Phase flag is: "
                                  f"{phase_flag}") from None

    @classmethod
    def decode(cls, stream: BinaryIO, header: KmallHeader,
               config: Optional[CodecConfig] = None):
        part = read_fixed(stream, MPartition, config)
        mbody = LengthFramedBlockCodec.decode(stream, MBody, config=config)
        tx_info = LengthFramedBlockCodec.decode(stream, MWCTxInfo, config=config)
        tx_sectors, _ = VariableCountArrayCodec.decode(
            stream, MWCTxSector, tx_info.number_tx_sectors,
            element_size=tx_info.num_bytes_tx_sector,
            max_count=MAX_NUM_TX_PULSES, config=config)
        rx_info = LengthFramedBlockCodec.decode(stream, MWCRXInfo, config=config)
        check_bound("number_beams", rx_info.number_beams, MAX_NUM_BEAMS)
        phase_dtype = cls.phase_dtype(rx_info.phase_flag)
        beams = [MWCBeam.decode(stream, rx_info.num_bytes_beam, phase_dtype, config)
                 for _ in range(rx_info.number_beams or 0)]

        # noinspection PyArgumentList
        return cls(header=header, partition=part, mb_body=mbody, tx_info=tx_info,
                   tx_sectors=tx_sectors, rx_info=rx_info, beams=beams)

    def encode(self, stream: BinaryIO, config: Optional[CodecConfig] = None):
        check_count('number_tx_sectors', self.tx_info.number_tx_sectors,
                    len(self.tx_sectors))
        check_count('number_beams', self.rx_info.number_beams, len(self.beams))
        phase_dtype = self.phase_dtype(self.rx_info.phase_flag)

        write_fixed(stream, self.partition, config)
        LengthFramedBlockCodec.encode(stream, self.mb_body, config=config)
        LengthFramedBlockCodec.encode(stream, self.tx_info, config=config)
        VariableCountArrayCodec.encode(stream, self.tx_sectors,
                                       element_size=self.tx_info.num_bytes_tx_sector,
                                       config=config)
        LengthFramedBlockCodec.encode(stream, self.rx_info, config=config)
        for beam in self.beams:
            beam.encode(stream, self.rx_info.num_bytes_beam, phase_dtype, config)


# ### External Sensor Output Datagrams ###
# ## Sensor Common Structs ##
@attr.s(auto_attribs=True)
class SInfo:
    """ Sensor information, child structure to the Sensor class datagrams """
    num_bytes: int = km_field('H', Units.BYTE, default=8, length=True)
    system: int = km_field('H')
    status: int = km_field('H')
    padding: int = km_field('H')

    @property
    def status_flags(self) -> dict:
        # Set up base dictionary
        sensor_status = dict()
        sensor_status['sensor_active'] = True
        sensor_status['data_valid_1'] = "Data OK"
        sensor_status['data_valid_2'] = "Data OK"
        sensor_status['velocity_source'] = "Sensor"

        # These values only valid for SPO and CPO
        sensor_status['time_source'] = "PU"
        sensor_status['motion_corrected'] = False
        sensor_status['quality_check'] = "Normal"

        flags = get_flags(self.status or 0)

        if flags[0] == 0:
            sensor_status['sensor_active'] = False
        if flags[2] == 1:
            sensor_status['data_valid_1'] = "Reduced Performance"
        if flags[4] == 1:
            sensor_status['data_valid_2'] = "Invalid data"
        if flags[6] == 1:
            sensor_status['velocity_source'] = 'PU'
        if flags[9] == 1:
            sensor_status['time_source'] = 'Datagram'
        if flags[10] == 1:
            sensor_status['motion_corrected'] = True
        if flags[11] == 1:
            sensor_status['quality_check'] = 'Operator'

        return sensor_status


@attr.s(auto_attribs=True)
class SensorDatagram(Datagram):
    """ Sensor common part, one fixed data block, raw sensor bytes

    The raw bytes run to the start of the trailing length field.
    """
    data_cls: ClassVar[type]

    @classmethod
    def decode(cls, stream: BinaryIO, header: KmallHeader,
               config: Optional[CodecConfig] = None):
        s_info = LengthFramedBlockCodec.decode(stream, SInfo, config=config)
        s_data = read_fixed(stream, cls.data_cls, config)
        raw = read_remaining(stream, header.size - TRAILER_SIZE)

        # noinspection PyArgumentList
        return cls(header=header, sensor_info=s_info, sensor_data=s_data, raw_data=raw)

    def encode(self, stream: BinaryIO, config: Optional[CodecConfig] = None):
        LengthFramedBlockCodec.encode(stream, self.sensor_info, config=config)
        write_fixed(stream, self.sensor_data, config)
        stream.write(self.raw_data)

    @property
    def raw_text(self) -> str:
        return self.raw_data.rstrip(b'\x00').decode('ascii', 'replace')


# ## SPO ##
@attr.s(auto_attribs=True)
class SPOData:
    """ Postion data, child structure of SPO"""
    time_sec: int = km_field('I', Units.SECOND)
    time_nanosec: int = km_field('I', Units.NANOSECOND)
    pos_fix_quality: float = km_field('f', Units.METER)
    latitude_corrected: float = geo_field(LATITUDE_LIMIT)
    longitude_corrected: float = geo_field(LONGITUDE_LIMIT)
    sog: float = km_field('f', Units.METERSPERSECOND)
    cog: float = km_field('f', Units.DEGREE)
    ellipsoid_height: float = km_field('f', Units.METER)

    @property
    def date_time(self) -> datetime:
        return km_datetime(self.time_sec, self.time_nanosec)

    @property
    def position_available(self) -> bool:
        return (self.latitude_corrected != UNAVAILABLE_LATITUDE
                and self.longitude_corrected != UNAVAILABLE_LONGITUDE)

    @property
    def velocity_available(self) -> bool:
        return self.sog != UNAVAILABLE_SPEED and self.cog != UNAVAILABLE_COURSE


@attr.s(auto_attribs=True)
class SPO(SensorDatagram):
    """ Position datagram parent class """
    dg_id = b'#SPO'
    desc = "Sensor (S) data for postiion (PO)"
    data_cls = SPOData

    sensor_info: SInfo = attr.ib(factory=SInfo)
    sensor_data: SPOData = attr.ib(factory=SPOData)
    raw_data: bytes = b''


# ## CPO ##
@attr.s(auto_attribs=True)
class CPO(SPO):
    """ Compatibility position datagram, same structure as SPO """
    dg_id = b'#CPO'
    desc = "Compatibility (C) data for position (PO)"


# ## SKM ##
@attr.s(auto_attribs=True)
class SKMSensorInfo:
    """ SKM info, a child structure of SKM """
    num_bytes: int = km_field('H', Units.BYTE, default=12, length=True)
    sensor_system: int = km_field('B')
    sensor_status: int = km_field('B')
    sensor_input_format: int = km_field('H')
    number_of_samples: int = km_field('H')
    num_bytes_sample: int = km_field('H', Units.BYTE, default=132)
    sensor_data_contents: int = km_field('H')


@attr.s(auto_attribs=True)
class SKMSample:
    """ KMbinary sample followed by its delayed heave, a child of SKM"""
    dgm_type: bytes = km_field('4s', default=b'#KMB')
    num_bytes: int = km_field('H', Units.BYTE, default=120)
    dgm_version: int = km_field('H', default=1)
    time_sec: int = km_field('I', Units.SECOND)
    time_nanosec: int = km_field('I', Units.NANOSECOND)
    status: int = km_field('I')
    latitude: float = geo_field(LATITUDE_LIMIT)
    longitude: float = geo_field(LONGITUDE_LIMIT)
    ellipsoid_height: float = km_field('f', Units.METER)
    roll: float = km_field('f', Units.DEGREE)
    pitch: float = km_field('f', Units.DEGREE)
    heading: float = km_field('f', Units.DEGREE)
    heave: float = km_field('f', Units.METER)
    roll_rate: float = km_field('f', Units.DEGREESPERSECOND)
    pitch_rate: float = km_field('f', Units.DEGREESPERSECOND)
    yaw_rate: float = km_field('f', Units.DEGREESPERSECOND)
    velocity_north: float = km_field('f', Units.METERSPERSECOND)
    velocity_east: float = km_field('f', Units.METERSPERSECOND)
    velocity_down: float = km_field('f', Units.METERSPERSECOND)
    latitude_error: float = km_field('f', Units.METER)
    longitude_error: float = km_field('f', Units.METER)
    ellipsoid_height_error: float = km_field('f', Units.METER)
    roll_error: float = km_field('f', Units.DEGREE)
    pitch_error: float = km_field('f', Units.DEGREE)
    heading_error: float = km_field('f', Units.DEGREE)
    heave_error: float = km_field('f', Units.METER)
    acceleration_north: float = km_field('f', Units.METERSPERSECOND2)
    acceleration_east: float = km_field('f', Units.METERSPERSECOND2)
    acceleration_down: float = km_field('f', Units.METERSPERSECOND2)
    delayed_heave_time_sec: int = km_field('I', Units.SECOND)
    delayed_heave_time_nanosec: int = km_field('I', Units.NANOSECOND)
    delayed_heave: float = km_field('f', Units.METER)

    @property
    def date_time(self) -> datetime:
        return km_datetime(self.time_sec, self.time_nanosec)


@attr.s(auto_attribs=True)
class SKM(Datagram):
    """ Attitude and velocity samples, parent class """
    dg_id = b'#SKM'
    dg_version = 1
    desc = "Sensor (S) KM binary sensor format (KM)"

    info: SKMSensorInfo = attr.ib(factory=SKMSensorInfo)
    samples: List[SKMSample] = attr.ib(factory=list)

    @classmethod
    def decode(cls, stream: BinaryIO, header: KmallHeader,
               config: Optional[CodecConfig] = None):
        info = LengthFramedBlockCodec.decode(stream, SKMSensorInfo, config=config)
        samples, _ = VariableCountArrayCodec.decode(
            stream, SKMSample, info.number_of_samples,
            element_size=info.num_bytes_sample,
            max_count=MAX_ATT_SAMPLES, config=config)
        # noinspection PyArgumentList
        return cls(header=header, info=info, samples=samples)

    def encode(self, stream: BinaryIO, config: Optional[CodecConfig] = None):
        check_count('number_of_samples', self.info.number_of_samples, len(self.samples))
        LengthFramedBlockCodec.encode(stream, self.info, config=config)
        VariableCountArrayCodec.encode(stream, self.samples,
                                       element_size=self.info.num_bytes_sample,
                                       config=config)


# ## SVP ##
@attr.s(auto_attribs=True)
class SVPInfo:
    """ Sound velocity profile info, child structure of SVP"""
    num_bytes: int = km_field('H', Units.BYTE, default=28, length=True)
    number_of_samples: int = km_field('H')
    sensor_format: bytes = km_field('4s')
    time_sec: int = km_field('I', Units.SECOND)
    latitude: float = geo_field(LATITUDE_LIMIT)
    longitude: float = geo_field(LONGITUDE_LIMIT)

    @property
    def date_time(self) -> datetime:
        return km_datetime(self.time_sec)


@attr.s(auto_attribs=True)
class SVPPoint:
    depth: float = km_field('f', Units.METER)
    sound_velocity: float = km_field('f', Units.METERSPERSECOND)
    padding: int = km_field('I')
    temperature: float = km_field('f', Units.CELSIUS)
    salinity: float = km_field('f', Units.PSU)


@attr.s(auto_attribs=True)
class SVP(Datagram):
    """ Sound velocity profile, parent class """
    dg_id = b'#SVP'
    dg_version = 1
    desc = "Sensor (S) data from sound velocity (V) profile (P) or CTD"

    info: SVPInfo = attr.ib(factory=SVPInfo)
    points: List[SVPPoint] = attr.ib(factory=list)

    @classmethod
    def decode(cls, stream: BinaryIO, header: KmallHeader,
               config: Optional[CodecConfig] = None):
        info = LengthFramedBlockCodec.decode(stream, SVPInfo, config=config)
        points, _ = VariableCountArrayCodec.decode(stream, SVPPoint,
                                                   info.number_of_samples,
                                                   max_count=MAX_SVP_POINTS,
                                                   config=config)
        # noinspection PyArgumentList
        return cls(header=header, info=info, points=points)

    def encode(self, stream: BinaryIO, config: Optional[CodecConfig] = None):
        check_count('number_of_samples', self.info.number_of_samples, len(self.points))
        LengthFramedBlockCodec.encode(stream, self.info, config=config)
        VariableCountArrayCodec.encode(stream, self.points, config=config)


# ## SVT ##
@attr.s(auto_attribs=True)
class SVTInfo:
    """ Sound velocity at transducer info, child structure of SVT"""
    num_bytes: int = km_field('H', Units.BYTE, default=20, length=True)
    sensor_status: int = km_field('H')
    sensor_input_format: int = km_field('H')
    number_of_samples: int = km_field('H')
    num_bytes_sample: int = km_field('H', Units.BYTE, default=24)
    sensor_data_contents: int = km_field('H')
    filter_time: float = km_field('f', Units.SECOND)
    sound_velocity_offset: float = km_field('f', Units.METERSPERSECOND)


@attr.s(auto_attribs=True)
class SVTSample:
    time_sec: int = km_field('I', Units.SECOND)
    time_nanosec: int = km_field('I', Units.NANOSECOND)
    sound_velocity: float = km_field('f', Units.METERSPERSECOND)
    temperature: float = km_field('f', Units.CELSIUS)
    pressure: float = km_field('f', Units.PASCAL)
    salinity: float = km_field('f', Units.PSU)


@attr.s(auto_attribs=True)
class SVT(Datagram):
    """ Sound velocity at transducer, parent class """
    dg_id = b'#SVT'
    desc = "Sensor (S) data for sound velocity (V) at transducer (T)"

    info: SVTInfo = attr.ib(factory=SVTInfo)
    samples: List[SVTSample] = attr.ib(factory=list)

    @classmethod
    def decode(cls, stream: BinaryIO, header: KmallHeader,
               config: Optional[CodecConfig] = None):
        info = LengthFramedBlockCodec.decode(stream, SVTInfo, config=config)
        samples, _ = VariableCountArrayCodec.decode(
            stream, SVTSample, info.number_of_samples,
            element_size=info.num_bytes_sample, config=config)
        # noinspection PyArgumentList
        return cls(header=header, info=info, samples=samples)

    def encode(self, stream: BinaryIO, config: Optional[CodecConfig] = None):
        check_count('number_of_samples', self.info.number_of_samples, len(self.samples))
        LengthFramedBlockCodec.encode(stream, self.info, config=config)
        VariableCountArrayCodec.encode(stream, self.samples,
                                       element_size=self.info.num_bytes_sample,
                                       config=config)


# ## SCL ##
@attr.s(auto_attribs=True)
class SCLData:
    """ Clock data, child structure of SCL"""
    offset: float = km_field('f', Units.SECOND)
    clock_deviation_pu: int = km_field('i', Units.NANOSECOND)


@attr.s(auto_attribs=True)
class SCL(SensorDatagram):
    """ Clock datagram, parent class """
    dg_id = b'#SCL'
    desc = "Sensor (S) data from clock (CL)"
    data_cls = SCLData

    sensor_info: SInfo = attr.ib(factory=SInfo)
    sensor_data: SCLData = attr.ib(factory=SCLData)
    raw_data: bytes = b''


# ## SDE ##
@attr.s(auto_attribs=True)
class SDEData:
    """ Depth sensor data, child structure of SDE"""
    depth_used: float = km_field('f', Units.METER)
    offset: float = km_field('f', Units.METER)
    scale: float = km_field('f')
    latitude: float = geo_field(LATITUDE_LIMIT)
    longitude: float = geo_field(LONGITUDE_LIMIT)


@attr.s(auto_attribs=True)
class SDE(SensorDatagram):
    """ Depth datagram, parent class """
    dg_id = b'#SDE'
    desc = "Sensor (S) data from depth (DE) sensor"
    data_cls = SDEData

    sensor_info: SInfo = attr.ib(factory=SInfo)
    sensor_data: SDEData = attr.ib(factory=SDEData)
    raw_data: bytes = b''


# ## SHI ##
@attr.s(auto_attribs=True)
class SHIData:
    """ Height sensor data, child structure of SHI"""
    sensor_type: int = km_field('H')
    height_used: float = km_field('f', Units.METER)


@attr.s(auto_attribs=True)
class SHI(SensorDatagram):
    """ Height datagram, parent class """
    dg_id = b'#SHI'
    desc = "Sensor (S) data for height (HI)"
    data_cls = SHIData

    sensor_info: SInfo = attr.ib(factory=SInfo)
    sensor_data: SHIData = attr.ib(factory=SHIData)
    raw_data: bytes = b''


# ### Compatibility Datagrams ###
# ## CHE ##
@attr.s(auto_attribs=True)
class CHEData:
    heave: float = km_field('f', Units.METER)


@attr.s(auto_attribs=True)
class CHE(Datagram):
    """ Compatibility heave datagram, parent class """
    dg_id = b'#CHE'
    desc = "Compatibility (C) data for heave (HE)"

    mb_body: MBody = attr.ib(factory=MBody)
    data: CHEData = attr.ib(factory=CHEData)

    @classmethod
    def decode(cls, stream: BinaryIO, header: KmallHeader,
               config: Optional[CodecConfig] = None):
        mbody = LengthFramedBlockCodec.decode(stream, MBody, config=config)
        data = read_fixed(stream, CHEData, config)
        # noinspection PyArgumentList
        return cls(header=header, mb_body=mbody, data=data)

    def encode(self, stream: BinaryIO, config: Optional[CodecConfig] = None):
        LengthFramedBlockCodec.encode(stream, self.mb_body, config=config)
        write_fixed(stream, self.data, config)


# ### File Datagrams ###
# ## FCF ##
@attr.s(auto_attribs=True)
class FCFCommon:
    """ General file information, child structure to FCF """
    max_filename_length: ClassVar[int] = 64
    max_file_size: ClassVar[int] = 63000

    dict_status: ClassVar[dict] = {
        -1: "File not found",
        0: "OK",
        1: "File too large (cropped)"
    }

    num_bytes: int = km_field('H', Units.BYTE, default=72, length=True)
    file_status: int = km_field('b')
    padding: int = km_field('B')
    file_size: int = km_field('I', Units.BYTE)
    file_name: bytes = km_field(f'{max_filename_length}s')

    @property
    def status_desc(self) -> str:
        return self.dict_status.get(self.file_status, "Unknown")

    @property
    def file_name_text(self) -> str:
        return self.file_name.rstrip(b'\x00').decode('utf-8', 'replace')


@attr.s(auto_attribs=True)
class FCF(Datagram):
    """ Backscatter calibration/BSCORR file datagram, parent class """
    dg_id = b'#FCF'
    desc = "Backscatter calibration (C) file (F) datagram"

    partition: MPartition = attr.ib(factory=MPartition)
    file_info: FCFCommon = attr.ib(factory=FCFCommon)
    calibration_file: bytes = b''

    @classmethod
    def decode(cls, stream: BinaryIO, header: KmallHeader,
               config: Optional[CodecConfig] = None):
        prt = read_fixed(stream, MPartition, config)
        f_info = LengthFramedBlockCodec.decode(stream, FCFCommon, config=config)
        check_bound("file_size", f_info.file_size, FCFCommon.max_file_size)
        fl_data = read_exact(stream, f_info.file_size or 0, where="calibration file")
        # noinspection PyArgumentList
        return cls(header=header, partition=prt, file_info=f_info,
                   calibration_file=fl_data)

    def encode(self, stream: BinaryIO, config: Optional[CodecConfig] = None):
        check_count('file_size', self.file_info.file_size, len(self.calibration_file))
        write_fixed(stream, self.partition, config)
        LengthFramedBlockCodec.encode(stream, self.file_info, config=config)
        stream.write(self.calibration_file)


# #### Module Functions ####

def get_flags(val: int, num_entries: int = 16, rt_int: bool = False) -> list:
    """ Returns the bytes encoded flags as a list of bool"""

    flags = list(f'{val:016b}')
    if rt_int is False:
        flags = list(map(lambda x: bool(int(x)), flags))
    else:
        flags = list(map(int, flags))

    flags.reverse()
    flags = flags[:num_entries]  # Drop padded/unused bits'

    return flags


def lookup_datagram(dg_id: bytes) -> type:
    try:
        return kmall_dispatch[dg_id]
    except KeyError:
        raise UnsupportedType(dg_id) from None


def decode_record(data: bytes, config: Optional[CodecConfig] = None) -> Datagram:
    """ Decodes one complete record held in memory

    Input:
        data        - the record bytes, from its header to its declared end
        config      - CodecConfig, default_config if None

    Output:
        record      - datagram object, HeaderOnly for a sentinel header
    """
    header, loc = KmallHeader.parse(data)
    if header.is_null:
        return HeaderOnly(header=header)

    dg_cls = lookup_datagram(header.id)
    if header.size < KmallHeader.header_size:
        raise MalformedRecord(f"{header.id!r} declares {header.size} bytes, "
                              f"less than a header")
    if len(data) < header.size:
        raise Truncated(needed=header.size, available=len(data),
                        where=header.id.decode('ascii', 'replace'))

    stream = io.BytesIO(data[:header.size])
    stream.seek(loc)
    return dg_cls.decode(stream, header, config)


def encode_record(record: Datagram, config: Optional[CodecConfig] = None) -> bytes:
    """ Serializes a record, header to trailing length field

    The written size is the header size or, if the payload does not fit in
    it, the minimal size. Unused bytes before the trailing length field are
    zero.
    """
    if record.header.is_null:
        return record.header.pack()

    payload = io.BytesIO()
    record.encode(payload, config)
    body = payload.getvalue()

    minimal = KmallHeader.header_size + len(body) + TRAILER_SIZE
    size = max(record.header.size, minimal)
    if size != record.header.size:
        logger.debug(f"{record.header.id!r}: header size {record.header.size} "
                     f"raised to {size}")
    header = attr.evolve(record.header, size=size)

    data = header.pack() + body
    return data.ljust(size - TRAILER_SIZE, b'\x00') + struct.pack(TRAILER_FMT, size)


def with_minimal_size(record: Datagram) -> Datagram:
    """ Copy of the record whose header size is its minimal encoded size"""
    if record.header.is_null:
        return record
    minimal = len(encode_record(attr.evolve(record, header=attr.evolve(record.header,
                                                                         size=0))))
    return attr.evolve(record, header=attr.evolve(record.header, size=minimal))


# #### Dispatch Table ####

# Dispatch table is used for late binding (i.e. calling dynamically at
# runtime). The table is used to replace long/slow if/elif/else code blocks.

kmall_dispatch = {
    b'#IIP': IIP,
    b'#IOP': IOP,
    b'#IBE': IBE,
    b'#IBR': IBR,
    b'#IBS': IBS,
    #
    b'#MRZ': MRZ,
    b'#MWC': MWC,

    b'#SPO': SPO,
    b'#SKM': SKM,
    b'#SVP': SVP,
    b'#SVT': SVT,
    b'#SCL': SCL,
    b'#SDE': SDE,
    b'#SHI': SHI,
    #
    b'#CPO': CPO,
    b'#CHE': CHE,
    #
    b'#FCF': FCF,
}
