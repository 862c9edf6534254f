# author: Quickboot tools maintainers

import numpy as np
import more_itertools as miter

from errors import FormatError

# Intel HEX record types used in .mcs files.
RECORD_TYPE_DATA = 0x00
RECORD_TYPE_EOF = 0x01
RECORD_TYPE_EXTENDED_LINEAR_ADDRESS = 0x04

# Each extended linear address record selects a 64 KiB bank.
BANK_SIZE_BYTES = 0x10000
DATA_RECORD_MAX_BYTES = 16

EOF_RECORD = ":00000001FF"

# The checksum is the two's complement of the sum of all other record bytes.
def record_checksum(
  record_bytes: bytes
) -> int:
  return (-sum(record_bytes)) & 0xff

# Formats one record such as ":10000000FFFFFFFF...FFxx".
def format_record(
  record_type: int,
  address: int,
  data: bytes
) -> str:
  assert len(data) <= 0xff, f"Error: Record payload of {len(data)} bytes too long."
  assert 0 <= address <= 0xffff, f"Error: Record address 0x{address:x} does not fit in 16 bits."
  record_bytes = bytes([len(data), address >> 8, address & 0xff, record_type]) + data
  return f":{record_bytes.hex().upper()}{record_checksum(record_bytes):0>2X}"

# Serializes a flash image into .mcs lines.
#
# Args:
# - byte_image: np.ndarray
#     Byte-view of the flash image. Address 0 of the flash is index 0.
# - start_address: int
#     First address to emit. Bytes before it are not written to the file.
#
# Returns:
# - lines: list[str]
#     One extended linear address record per 64 KiB bank, the data records of
#     the bank (16 bytes each, never crossing the bank) and the EOF record.
#     Every byte is emitted, 0xff filler included.
def encode_mcs(
  byte_image: np.ndarray,
  start_address: int = 0
) -> list[str]:
  assert byte_image.itemsize == 1, f"Error: Expected 8-bit view of flash image."
  assert 0 <= start_address <= byte_image.size, f"Error: Start address 0x{start_address:x} outside of image."

  lines: list[str] = list()
  bank_ofst = start_address
  while bank_ofst < byte_image.size:
    bank = bank_ofst // BANK_SIZE_BYTES
    bank_end = min((bank + 1) * BANK_SIZE_BYTES, byte_image.size)
    lines.append(format_record(RECORD_TYPE_EXTENDED_LINEAR_ADDRESS, 0, bank.to_bytes(2, "big")))

    record_ofst = bank_ofst
    for chunk in miter.sliced(byte_image[bank_ofst:bank_end].tobytes(), DATA_RECORD_MAX_BYTES):
      lines.append(format_record(RECORD_TYPE_DATA, record_ofst % BANK_SIZE_BYTES, chunk))
      record_ofst += len(chunk)

    bank_ofst = bank_end

  lines.append(EOF_RECORD)
  return lines

# Parses one record line and verifies its checksum.
#
# Returns:
# - (record_type, address, data): tuple[int, int, bytes]
def parse_record(
  line: str,
  line_idx: int
) -> tuple[int, int, bytes]:
  line = line.strip()
  if not line.startswith(":"):
    raise FormatError(line_idx, f"Record \"{line}\" does not start with ':'")
  try:
    record_bytes = bytes.fromhex(line[1:])
  except ValueError:
    raise FormatError(line_idx, f"Record \"{line}\" is not a hex string")

  if len(record_bytes) < 5:
    raise FormatError(line_idx, f"Record \"{line}\" too short")
  data_len = record_bytes[0]
  if len(record_bytes) != data_len + 5:
    raise FormatError(line_idx, f"Record \"{line}\" announces {data_len} data bytes, but holds {len(record_bytes) - 5}")
  if sum(record_bytes) & 0xff != 0:
    raise FormatError(line_idx, f"Record \"{line}\" has checksum 0x{record_bytes[-1]:0>2x}, expected 0x{record_checksum(record_bytes[:-1]):0>2x}")

  address = int.from_bytes(record_bytes[1:3], "big")
  record_type = record_bytes[3]
  return (record_type, address, record_bytes[4:-1])

# Rebuilds the contiguous flash image of .mcs lines produced by encode_mcs().
# The byte offset reported in errors is the index of the offending line.
#
# Returns:
# - (start_address, byte_image): tuple[int, np.ndarray]
#     Address of the first data byte, and the data from that address on.
def decode_mcs(
  lines: list[str]
) -> tuple[int, np.ndarray]:
  chunks: list[bytes] = list()
  start_address = None
  next_address = None
  bank_base = 0
  found_eof = False

  for (line_idx, line) in enumerate(lines):
    if line.strip() == "":
      continue
    if found_eof:
      raise FormatError(line_idx, "Record found after EOF record")

    (record_type, address, data) = parse_record(line, line_idx)
    if record_type == RECORD_TYPE_EXTENDED_LINEAR_ADDRESS:
      if len(data) != 2:
        raise FormatError(line_idx, f"Extended linear address record holds {len(data)} bytes, expected 2")
      bank_base = int.from_bytes(data, "big") * BANK_SIZE_BYTES
    elif record_type == RECORD_TYPE_DATA:
      abs_address = bank_base + address
      if start_address is None:
        start_address = abs_address
      elif abs_address != next_address:
        raise FormatError(line_idx, f"Data record at 0x{abs_address:0>8x} does not follow the previous one (expected 0x{next_address:0>8x})")
      chunks.append(data)
      next_address = abs_address + len(data)
    elif record_type == RECORD_TYPE_EOF:
      found_eof = True
    else:
      raise FormatError(line_idx, f"Unsupported record type 0x{record_type:0>2x}")

  if not found_eof:
    raise FormatError(len(lines), "Missing EOF record")

  byte_image = np.frombuffer(b"".join(chunks), dtype=np.uint8).copy()
  return (0 if start_address is None else start_address, byte_image)

def write_mcs_file(
  path: str,
  lines: list[str]
) -> None:
  with open(path, "w") as f:
    for line in lines:
      f.write(f"{line}\n")
