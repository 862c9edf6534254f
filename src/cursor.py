# author: Quickboot tools maintainers

import numpy as np

import bitstream_spec as bit_spec
from errors import TruncatedPacketError


# Bounds-checked reader/writer over a byte-level view of a bitstream.
#
# Packets in a bitstream are not necessarily word-aligned relative to the start
# of the buffer (the SYNC WORD can appear at any byte offset), so we keep a byte
# offset and view individual slices as big-endian words on demand. Any access
# past the end of the buffer raises a TruncatedPacketError instead of silently
# returning a short slice.
class Cursor:
  def __init__(
    self,
    byte_bitstream: np.ndarray,
    byte_ofst: int = 0
  ) -> None:
    assert byte_bitstream.itemsize == 1, f"Error: Expected 8-bit view of bitstream."
    assert byte_ofst >= 0, f"Error: Negative byte ofst {byte_ofst}."
    self.buffer = byte_bitstream
    self.byte_ofst = byte_ofst

  def remaining_bytes(self) -> int:
    return max(self.buffer.size - self.byte_ofst, 0)

  def at_end(self) -> bool:
    return self.remaining_bytes() == 0

  def __require(
    self,
    num_bytes: int
  ) -> None:
    if num_bytes > self.remaining_bytes():
      raise TruncatedPacketError(self.byte_ofst, num_bytes, self.remaining_bytes())

  # Returns `num_words` words starting at the current offset without moving the
  # cursor. The result is a view into the underlying buffer.
  def peek_words(
    self,
    num_words: int
  ) -> np.ndarray:
    num_bytes = num_words * bit_spec.WORD_SIZE_BYTES
    self.__require(num_bytes)
    byte_slice = self.buffer[self.byte_ofst : self.byte_ofst + num_bytes]
    return byte_slice.view(dtype=bit_spec.BITSTREAM_ENDIANNESS)

  def peek_word(self) -> int:
    return int(self.peek_words(1)[0])

  def read_words(
    self,
    num_words: int
  ) -> np.ndarray:
    words = self.peek_words(num_words)
    self.byte_ofst += words.nbytes
    return words

  def read_word(self) -> int:
    return int(self.read_words(1)[0])

  def skip(
    self,
    num_bytes: int
  ) -> None:
    self.__require(num_bytes)
    self.byte_ofst += num_bytes

  # Overwrites the word at the current offset and advances past it.
  def write_word(
    self,
    value: int
  ) -> None:
    self.__require(bit_spec.WORD_SIZE_BYTES)
    word = np.array([value], dtype=bit_spec.BITSTREAM_ENDIANNESS).view(dtype=np.uint8)
    self.buffer[self.byte_ofst : self.byte_ofst + bit_spec.WORD_SIZE_BYTES] = word
    self.byte_ofst += bit_spec.WORD_SIZE_BYTES
