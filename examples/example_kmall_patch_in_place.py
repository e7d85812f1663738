import logging
import shutil

from pathlib import Path

from kmcodec.internal.config import CodecConfig
from kmcodec.internal.errors import GrowthViolation
from kmcodec.kmall.stream_cursor import StreamCursor
from kmcodec.kmall.writer import RandomAccessWriter

logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)


# #### Patch In Place Example Script ####
# This script applies a waterline correction to every MRZ record of a copy of
# a kmall file, rewriting each record at its original offset.

# Get path to file
dpath = Path(__file__).resolve()
data_dir = dpath.parents[1].joinpath("data").joinpath("download")

file_path = list(data_dir.rglob("*.kmall"))[0]
out_path = file_path.with_name(f"{file_path.stem}_patched{file_path.suffix}")
shutil.copyfile(file_path, out_path)
logger.debug(f"Patching file: {out_path.absolute()}")

waterline_offset = 0.25  # meters
config = CodecConfig(geo_anomaly="raise")

with out_path.open(mode='r+b') as f:
    # Reader and writer share the file object, a patch leaves the position at
    # the end of the patched record so the loop carries on from there
    cursor = StreamCursor(f, record_types=[b'#MRZ'], config=config)
    writer = RandomAccessWriter(f, config=config)

    num_patched = 0
    for mrz in cursor.read_all():
        mrz.ping_info.waterline += waterline_offset
        try:
            writer.patch(mrz)
        except GrowthViolation as err:
            logger.warning(f"Skipped ping {mrz.mb_body.ping_count}: {err}")
            continue
        num_patched += 1

logger.debug(f"Number of MRZ records patched: {num_patched}")
