import struct

from datetime import datetime

import numpy as np
import pytest

from kmcodec.kmall.datagrams import (CHE, CHEData, CPO, FCF, FCFCommon, IBE, IBR, IBS,
                                     IIP, IOP, KmallHeader, MBody, MPartition, MRZ,
                                     MRZExtraDetectClass, MRZPingInfo, MRZRXInfo,
                                     MRZSounding, MRZTxSector, MWC, MWCBeam, MWCBeamInfo,
                                     MWCRXInfo, MWCTxInfo, MWCTxSector, SCL, SCLData, SDE,
                                     SDEData, SHI, SHIData, SInfo, SKM, SKMSample,
                                     SKMSensorInfo, SPO, SPOData, SVP, SVPInfo, SVPPoint,
                                     SVT, SVTInfo, SVTSample, HeaderOnly, encode_record,
                                     kmall_dispatch, with_minimal_size)

PING_TIME = datetime(2023, 5, 1, 12, 30, 15, 250000)


def make_spo(latitude: float = 43.0713, longitude: float = -70.7109) -> SPO:
    spo = SPO.new(date_time=PING_TIME, system_id=3, sounder_id=2040,
                  sensor_info=SInfo(system=1, status=1),
                  sensor_data=SPOData(time_sec=1682944215, time_nanosec=125000000,
                                      pos_fix_quality=0.5,
                                      latitude_corrected=latitude,
                                      longitude_corrected=longitude,
                                      sog=2.5, cog=90.25, ellipsoid_height=-25.5),
                  raw_data=b'$GPGGA,123015.25,4304.278,N,07042.654,W,2,10,0.9,'
                           b'1.2,M,-26.7,M,,*6A\r\n')
    return with_minimal_size(spo)


def make_mrz(si_counts=(3, 3, 4), num_sectors: int = 2, latitude: float = 43.5,
             longitude: float = -70.25) -> MRZ:
    tx_sectors = [MRZTxSector(sector_index=ii, tilt_angle=-1.5 + ii,
                              center_frequency=300000.0 + 10000.0 * ii,
                              bandwidth=25000.0, pulse_length_total=0.000244140625,
                              waveform=ii % 3, voltage_level=-3.0,
                              pulse_length_effective=0.0001220703125)
                  for ii in range(num_sectors)]
    soundings = [MRZSounding(index=ii, sector_index=ii % max(num_sectors, 1),
                             detection_type=1, detection_method=1,
                             quality_factor=0.25, twtt=0.0625 * (ii + 1),
                             beam_angle=-60.0 + 30.0 * ii, bs_type_2=-32.5,
                             z=25.5 + ii, y=-12.75 * ii, x=0.5,
                             delta_latitude=0.0001220703125,
                             si_center_sample=count // 2, si_num_samples=count)
                 for ii, count in enumerate(si_counts)]
    samples = np.arange(sum(si_counts), dtype='<i2') * 7 - 40

    mrz = MRZ.new(date_time=PING_TIME, system_id=3, sounder_id=2040,
                  partition=MPartition(number_of_datagrams=1, datagram_number=1),
                  mb_body=MBody(ping_count=1021, num_rx_fans=2, rx_fan_index=1,
                                num_swaths=2, algorithm=1),
                  ping_info=MRZPingInfo(ping_rate=2.5, beam_spacing=2, depth_mode=1,
                                        pulse_form=0, frequency_mode=300000.0,
                                        number_tx_sectors=num_sectors,
                                        heading=271.5, sound_speed_at_tx=1502.25,
                                        tx_depth=3.75, latitude=latitude,
                                        longitude=longitude, ellipsoid_height=-22.5,
                                        bs_corr_offset=-1.5, lamberts_law_active=1),
                  tx_sectors=tx_sectors,
                  rx_info=MRZRXInfo(max_number_soundings=len(soundings),
                                    valid_number_soundings=len(soundings),
                                    sample_rate_sb=30000.0, bs_normal=-20.5,
                                    bs_oblique=-30.5),
                  soundings=soundings,
                  seabed_samples=samples)
    return with_minimal_size(mrz)


def make_mrz_with_extra_detections() -> MRZ:
    mrz = make_mrz(si_counts=(2, 0, 5, 1))
    mrz.rx_info.max_number_soundings = 3
    mrz.rx_info.number_extra_detects = 1
    mrz.rx_info.number_extra_detect_classes = 2
    mrz.extra_detect_classes = [MRZExtraDetectClass(number_detections_in_class=1,
                                                    alarm_flag=1),
                                MRZExtraDetectClass()]
    return with_minimal_size(mrz)


def make_mwc(phase_flag: int = 1) -> MWC:
    phase_dtype = MWC.phase_dtype(phase_flag)
    beams = list()
    for ii, num_samples in enumerate((4, 0, 6)):
        info = MWCBeamInfo(beam_pointing_angle=-45.0 + 45.0 * ii, starting_sample=2,
                           detection_sample=3 + ii, tx_sector_number=ii % 2,
                           number_of_samples=num_samples, high_res_detect_sample=3.5)
        amplitude = (np.arange(num_samples, dtype='<i1') - 3) * 2
        if phase_dtype is None:
            phase = np.zeros(0, dtype='<i1')
        else:
            phase = np.arange(num_samples, dtype=phase_dtype) - 2
        beams.append(MWCBeam(info=info, amplitude=amplitude, phase=phase))

    mwc = MWC.new(date_time=PING_TIME,
                  partition=MPartition(number_of_datagrams=2, datagram_number=1),
                  mb_body=MBody(ping_count=1021),
                  tx_info=MWCTxInfo(number_tx_sectors=2, heave=0.25),
                  tx_sectors=[MWCTxSector(tilt_angle=-1.0, center_frequency=290000.0,
                                          along_ship_beamwidth=1.0, sector_index=0),
                              MWCTxSector(tilt_angle=1.0, center_frequency=310000.0,
                                          along_ship_beamwidth=1.0, sector_index=1)],
                  rx_info=MWCRXInfo(number_beams=len(beams), phase_flag=phase_flag,
                                    tvg_function=30, tvg_offset=-4,
                                    sample_rate=15000.0, sound_speed=1500.5),
                  beams=beams)
    return with_minimal_size(mwc)


def make_skm() -> SKM:
    samples = [SKMSample(time_sec=1682944215, time_nanosec=ii * 10000000,
                         status=0x10, latitude=43.0713 + ii * 1e-6,
                         longitude=-70.7109, ellipsoid_height=-25.5,
                         roll=0.5 * ii, pitch=-0.25, heading=271.5, heave=0.125,
                         velocity_north=1.5, delayed_heave_time_sec=1682944214,
                         delayed_heave=0.0625)
               for ii in range(3)]
    skm = SKM.new(date_time=PING_TIME,
                  info=SKMSensorInfo(sensor_system=1, sensor_status=1,
                                     number_of_samples=len(samples),
                                     sensor_data_contents=0x3f),
                  samples=samples)
    return with_minimal_size(skm)


def make_svp() -> SVP:
    points = [SVPPoint(depth=2.0 * ii, sound_velocity=1500.0 - ii,
                       temperature=12.5, salinity=31.5)
              for ii in range(5)]
    svp = SVP.new(date_time=PING_TIME,
                  info=SVPInfo(number_of_samples=len(points), sensor_format=b'S00\x00',
                               time_sec=1682940000, latitude=43.0713,
                               longitude=-70.7109),
                  points=points)
    return with_minimal_size(svp)


def make_svt() -> SVT:
    samples = [SVTSample(time_sec=1682944215, time_nanosec=ii, sound_velocity=1502.25,
                         temperature=11.5) for ii in range(2)]
    svt = SVT.new(date_time=PING_TIME,
                  info=SVTInfo(number_of_samples=len(samples), filter_time=1.0),
                  samples=samples)
    return with_minimal_size(svt)


def populated_records() -> list:
    """ One populated record per datagram id"""
    records = [
        make_spo(),
        with_minimal_size(CPO.new(date_time=PING_TIME,
                                  sensor_info=SInfo(system=2),
                                  sensor_data=SPOData(latitude_corrected=200.0,
                                                      longitude_corrected=200.0,
                                                      ellipsoid_height=-999.0),
                                  raw_data=b'$GPGGA,,,,,,0,,,,,,,,*66\r\n')),
        make_skm(),
        make_svp(),
        make_svt(),
        with_minimal_size(SCL.new(date_time=PING_TIME,
                                  sensor_data=SCLData(offset=0.125,
                                                      clock_deviation_pu=-1500),
                                  raw_data=b'$GPZDA,123015.25,01,05,2023,,*6B\r\n')),
        with_minimal_size(SDE.new(date_time=PING_TIME,
                                  sensor_data=SDEData(depth_used=12.5, offset=0.5,
                                                      scale=1.0, latitude=43.0713,
                                                      longitude=-70.7109),
                                  raw_data=b'D 12.50')),
        with_minimal_size(SHI.new(date_time=PING_TIME,
                                  sensor_data=SHIData(sensor_type=1, height_used=-2.25),
                                  raw_data=b'H -2.25\r\n')),
        make_mrz(),
        make_mwc(phase_flag=1),
        with_minimal_size(CHE.new(date_time=PING_TIME, mb_body=MBody(ping_count=12),
                                  data=CHEData(heave=-0.375))),
        with_minimal_size(FCF.new(date_time=PING_TIME,
                                  file_info=FCFCommon(
                                      file_size=11,
                                      file_name=b'bscorr.txt'.ljust(64, b'\x00')),
                                  calibration_file=b'# bscorr\n1\n')),
        with_minimal_size(IIP.from_text("OSCV:Empty,EMXV:EM2040P,SN=53011,\n"
                                        "IP=157.237.20.40:0xffff0000,", info=1,
                                        status=0, date_time=PING_TIME)),
        with_minimal_size(IOP.from_text("#Runtime parameters\nDepth mode: Auto",
                                        date_time=PING_TIME)),
        with_minimal_size(IBE.from_text("BIST error: RX unit", bist_info=1,
                                        bist_style=2, bist_number=14, bist_status=-1)),
        with_minimal_size(IBR.from_text("BIST reply: OK", bist_number=3)),
        with_minimal_size(IBS.from_text("OK")),
    ]
    assert {r.header.id for r in records} == set(kmall_dispatch)
    return records


def sentinel_bytes() -> bytes:
    return encode_record(HeaderOnly(header=KmallHeader()))


def unknown_record_bytes(dg_id: bytes = b'#XYZ') -> bytes:
    size = KmallHeader.header_size + 4 + 4
    return KmallHeader(size=size, id=dg_id).pack() + bytes(4) + struct.pack('<I', size)


@pytest.fixture
def spo() -> SPO:
    return make_spo()


@pytest.fixture
def mrz() -> MRZ:
    return make_mrz()


@pytest.fixture
def scenario_bytes(spo, mrz) -> bytes:
    """ [position][sentinel][bathymetry: 2 sectors, 3 soundings, 10 samples]"""
    return encode_record(spo) + sentinel_bytes() + encode_record(mrz)
