# author: Quickboot tools maintainers

import numpy as np

import bitstream_spec as bit_spec


# Generic helper method to extract a bit slice from an integer.
def bits(
  input: int,
  idx_high: int,
  idx_low: int
) -> int:
  assert idx_high >= idx_low, f"Error: Invalid bit range {idx_high}:{idx_low}"
  # We right-shift the input by idx_low, then mask the bit pattern to isolate
  # the part we are interested in.
  shifted_input = input >> idx_low
  mask = (1 << (idx_high - idx_low + 1)) - 1
  res = shifted_input & mask
  return res

# Inverse of bits(): places `value` in the idx_high:idx_low slice of a word.
def place_bits(
  value: int,
  idx_high: int,
  idx_low: int
) -> int:
  assert idx_high >= idx_low, f"Error: Invalid bit range {idx_high}:{idx_low}"
  mask = (1 << (idx_high - idx_low + 1)) - 1
  assert (value & ~mask) == 0, f"Error: Value 0x{value:x} does not fit in bit range {idx_high}:{idx_low}"
  return value << idx_low

# Converts a byte string such as b"\xaa\x99\x55\x66" into a uint8 array that
# can be compared against windows of a bitstream.
def magic_to_array(
  magic: bytes
) -> np.ndarray:
  return np.frombuffer(magic, dtype=np.uint8)

# Big-endian byte view of a sequence of 32-bit words.
def words_to_bytes(
  words: list[int]
) -> np.ndarray:
  return np.array(words, dtype=bit_spec.BITSTREAM_ENDIANNESS).view(dtype=np.uint8)

def hex_word(
  value: int
) -> str:
  return f"0x{value:0>8x}"
