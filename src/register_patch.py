# author: Quickboot tools maintainers

import numpy as np

import bitstream_spec as bit_spec
import packet as pkt
import packet_spec as pkt_spec
from cursor import Cursor
from errors import (MalformedPacketError, SyncNotFoundError,
                    UnexpectedReadError, UnsupportedWordCountError)
from magic_locator import find_magic

# Value returned by replace_register_write() when the register is not written
# before the configuration data starts.
REGISTER_NOT_FOUND = 0

# Returns the offset of the first byte after the SYNC WORD.
#
# The SYNC WORD is expected to start within the first `window` bytes of the
# header-stripped bitstream. It is not necessarily word-aligned.
def find_sync_end(
  byte_bitstream: np.ndarray,
  window: int = bit_spec.SYNC_SEARCH_WINDOW_BYTES
) -> int:
  sync_ofst = find_magic(byte_bitstream, bit_spec.SYNC_WORD_MAGIC, 0, window)
  if sync_ofst is None:
    raise SyncNotFoundError(window)
  return sync_ofst + len(bit_spec.SYNC_WORD_MAGIC)

# Walks the command prologue that follows the SYNC WORD and returns the packet
# that writes to `reg_addr`, or None if the prologue ends (first type-2 packet
# or end of buffer) before such a write is seen.
def _find_reg_write_pkt(
  byte_bitstream: np.ndarray,
  reg_addr: pkt_spec.Register
) -> pkt.Packet | None:
  assert byte_bitstream.itemsize == 1, f"Error: Expected 8-bit view of bitstream."

  byte_ofst = find_sync_end(byte_bitstream)

  while byte_ofst < byte_bitstream.size:
    (packet, next_byte_ofst) = pkt.decode_next(byte_bitstream, byte_ofst)

    # The first type-2 header marks the start of the configuration data and the
    # end of the interesting commands.
    if packet.hdr_tpe == pkt_spec.Type.TYPE2:
      return None

    if packet.opcode == pkt_spec.Opcode.READ:
      raise UnexpectedReadError(byte_ofst, f"Unexpected read of {packet.reg_addr.name} in command prologue")

    if packet.opcode == pkt_spec.Opcode.RSVD:
      raise MalformedPacketError(byte_ofst, f"Reserved opcode in packet header 0x{packet.header_word():0>8x}")

    if pkt.is_reg_write_pkt(packet, reg_addr):
      if packet.word_count != 1:
        raise UnsupportedWordCountError(byte_ofst, reg_addr.name, packet.word_count)
      return packet

    # NOOPs and writes to other registers are skipped along with their payload.
    byte_ofst = next_byte_ofst

  return None

# Like extract_register_write(), but returns None if the register is not written
# in the command prologue. This makes a write of value 0 distinguishable from a
# missing write.
def find_register_write(
  byte_bitstream: np.ndarray,
  reg_addr: pkt_spec.Register
) -> int | None:
  packet = _find_reg_write_pkt(byte_bitstream, reg_addr)
  if packet is None:
    return None
  return int(packet.data[0])

# Returns the value written to `reg_addr` in the command prologue, or
# REGISTER_NOT_FOUND (0) if the register is not written.
def extract_register_write(
  byte_bitstream: np.ndarray,
  reg_addr: pkt_spec.Register
) -> int:
  value = find_register_write(byte_bitstream, reg_addr)
  return REGISTER_NOT_FOUND if value is None else value

# Replaces the value written to `reg_addr` in the command prologue (in place).
#
# Args:
# - byte_bitstream: np.ndarray
#     Byte-level view of a header-stripped bitstream. Modified in place.
# - reg_addr: pkt_spec.Register
#     Target register.
# - value: int
#     New 32-bit value for the register write.
#
# Returns:
# - prev_value: int
#     The value that was previously written, or REGISTER_NOT_FOUND (0) if the
#     register is not written before the configuration data. In that case the
#     bitstream is left untouched.
def replace_register_write(
  byte_bitstream: np.ndarray,
  reg_addr: pkt_spec.Register,
  value: int
) -> int:
  assert 0 <= value <= bit_spec.DUMMY_WORD, f"Error: Value 0x{value:x} does not fit in a 32-bit register."

  packet = _find_reg_write_pkt(byte_bitstream, reg_addr)
  if packet is None:
    return REGISTER_NOT_FOUND

  # Get the existing word being written before it is overwritten, as the packet
  # payload is a view into the bitstream.
  prev_value = int(packet.data[0])
  cursor = Cursor(byte_bitstream, packet.byte_ofst + packet.data_ofst_bytes())
  cursor.write_word(value)
  return prev_value
