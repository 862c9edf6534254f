# author: Quickboot tools maintainers

import numpy as np

import bitstream_spec as bit_spec
import packet as pkt
import packet_spec as pkt_spec
from cursor import Cursor
from magic_locator import find_magic

# Header of a single-word write to the CRC register (0x30000001).
CRC_CHECK_MAGIC = b"\x30\x00\x00\x01"
# CRC checks are only looked for in the tail of the bitstream, which is where
# the final CRC write lives (after the last configuration frames).
CRC_SEARCH_WINDOW_BYTES = 3192

# WRITE CMD = RCRC (30 00 80 01 00 00 00 07). Resetting the CRC instead of
# checking it means a modified bitstream is still accepted by the device.
def reset_crc_words() -> list[int]:
  return pkt.cmd_write_words(pkt_spec.Command.RCRC)

# Replaces the last CRC check of the bitstream (in place) with a reset-CRC
# command.
#
# The search starts at the last word of the buffer and steps backwards in
# words. Candidate offsets must be greater than len - CRC_SEARCH_WINDOW_BYTES.
#
# Returns True if a CRC check was found and replaced, and False otherwise.
# Callers call this repeatedly until it returns False to disable every CRC
# check in the tail of the bitstream.
def disable_stream_crc(
  byte_bitstream: np.ndarray
) -> bool:
  assert byte_bitstream.itemsize == 1, f"Error: Expected 8-bit view of bitstream."

  num_bytes = byte_bitstream.size
  match_ofst = find_magic(
    byte_bitstream,
    CRC_CHECK_MAGIC,
    start=num_bytes - bit_spec.WORD_SIZE_BYTES,
    stop=num_bytes - CRC_SEARCH_WINDOW_BYTES,
    step=-bit_spec.WORD_SIZE_BYTES
  )

  if match_ofst is None:
    return False

  # The replacement covers the CRC header and its payload word. The cursor
  # raises if the payload word is missing.
  cursor = Cursor(byte_bitstream, match_ofst)
  cursor.peek_words(2)
  for word in reset_crc_words():
    cursor.write_word(word)

  return True

# Disables every CRC check that disable_stream_crc() can find. Returns the
# number of CRC checks that were replaced.
def disable_all_stream_crcs(
  byte_bitstream: np.ndarray
) -> int:
  num_disabled = 0
  while disable_stream_crc(byte_bitstream):
    num_disabled += 1
  return num_disabled
