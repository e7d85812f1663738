import logging

from pathlib import Path

from kmcodec.internal.errors import UnsupportedType
from kmcodec.kmall.stream_cursor import StreamCursor

logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)

# #### Reading Records Example Script ####
# This script is used to inspect the results of decoding the records of a
# kmall file. The user/reader is encouraged to run this script using debug mode.

# Get path to file
dpath = Path(__file__).resolve()
data_dir = dpath.parents[1].joinpath("data").joinpath("download")

# We take the first file in the directory, the index can be changed if
# there are other files
file_path = list(data_dir.rglob("*.kmall"))[0]
logger.debug(f"Data file: {file_path.absolute()}")

# Here we set the record ID to inspect.
dg_id = b'#MRZ'

with file_path.open(mode='rb') as f:
    cursor = StreamCursor(f)

    # Map of the whole file, the cursor position is left untouched
    dg_map = cursor.map_records()
    for map_id, entries in dg_map.items():
        logger.debug(f"ID: {map_id.decode('ascii'):10} Count: {len(entries)}")

    # Only the selected records are decoded, the others are skipped by seeking
    selected_records = list(cursor.read_all(dg_id))
    logger.debug(f"Number of {dg_id} records: {len(selected_records)}")

    # Every record, falling back to the header when a type has no decoder
    cursor.seek(0)
    num_dg = 0
    while True:
        try:
            record = cursor.read_record()
        except UnsupportedType as err:
            logger.debug(f"{err}, reading the header only")
            record = cursor.read_header()
        if record is None:
            break
        num_dg += 1

# Add a debug point below to inspect the selected_records list
logger.debug(f"Total number of records: {num_dg}")
