# author: Quickboot tools maintainers

import numpy as np

import bitstream_spec as bit_spec
import helpers
import packet_spec as pkt_spec
from cursor import Cursor
from errors import MalformedPacketError

# This package contains data structures to represent the type-1 and type-2
# packets encoded in a Xilinx bitstream, along with the helpers needed to emit
# short command sequences. This design is based off of information in "UG470:
# 7 Series FPGAs Configuration".

class Packet:
  def __init__(
    self,
    hdr_tpe: pkt_spec.Type,
    opcode: pkt_spec.Opcode,
    reg_addr: pkt_spec.Register | None,
    reserved: int | None,
    word_count: int,
    data: np.ndarray,
    byte_ofst: int
  ) -> None:
    # We expect a word-level array.
    assert data.dtype == bit_spec.BITSTREAM_ENDIANNESS, f"Error: Incorrect endianness."
    self.hdr_tpe = hdr_tpe
    self.opcode = opcode
    self.reg_addr = reg_addr
    self.reserved = reserved
    self.word_count = word_count
    self.data = data
    self.byte_ofst = byte_ofst

  def data_size_bytes(self) -> int:
    return self.data.nbytes

  def data_size_words(self) -> int:
    return self.data.size

  # Total packet size in bytes, including the header.
  def packet_size_bytes(self) -> int:
    # We add 4 bytes as the packet header is a 32-bit value.
    return self.data_size_bytes() + bit_spec.WORD_SIZE_BYTES

  # Offset at which the payload starts within the packet.
  def data_ofst_bytes(self) -> int:
    # The header is a 32-bit value and the payload comes immediately after.
    return bit_spec.WORD_SIZE_BYTES

  def header_word(self) -> int:
    if self.hdr_tpe == pkt_spec.Type.TYPE1:
      return type_1_header(self.opcode, self.reg_addr, self.word_count, self.reserved)
    else:
      return type_2_header(self.opcode, self.word_count)

  def command(self) -> pkt_spec.Command | None:
    if (self.reg_addr != pkt_spec.Register.CMD) or (self.opcode != pkt_spec.Opcode.WRITE) or (self.data.size == 0):
      return None
    cmd = helpers.bits(int(self.data[0]), pkt_spec.COMMAND_IDX_HIGH, pkt_spec.COMMAND_IDX_LOW)
    return pkt_spec.Command(cmd)

  def __str__(self) -> str:
    if self.data.size == 0:
      payload_str = ""
    elif self.hdr_tpe == pkt_spec.Type.TYPE1:
      payload_str = ",".join([helpers.hex_word(int(x)) for x in self.data])
      cmd = self.command()
      if cmd is not None:
        payload_str = f"{payload_str} ({cmd.name})"
    else:
      # Type-2 payloads hold the configuration frames and can be very large,
      # so we don't print them.
      payload_str = f"... skip {self.data_size_bytes()} bytes ..."

    # Bitwidth descriptions:
    # - header_type       => max "TYPE1"   => 5 chars
    # - word_count [10:0] => max 2047      => 4 decimal digits, but type-2 packet has 9 decimal digits, so we use the same here for consistency.
    # - word_count [26:0] => max 134217727 => 9 decimal digits
    # - opcode            => max "WRITE"   => 5 chars
    # - reg_addr          => max "BOOTSTS" => 7 chars
    reg_name = "-" if self.reg_addr is None else self.reg_addr.name
    return f"BYTE_OFST = 0x{self.byte_ofst:0>8x}, PKT_HEADER = 0x{self.header_word():0>8x} (PKT_TYPE = {self.hdr_tpe.name:<5}, OP = {self.opcode.name:<5}, REG = {reg_name:<7}, WORD_COUNT = {self.word_count:>9}), PKT_PAYLOAD = {{ {payload_str} }}"

# Decodes the packet whose header starts at `byte_ofst`.
#
# Args:
# - byte_bitstream: np.ndarray
#     Byte-level view of a bitstream.
# - byte_ofst: int
#     Offset of the packet header.
# - prev_reg_addr: pkt_spec.Register | None
#     Register of the closest preceding type-1 packet. Type-2 packets do not
#     encode a register address and implicitly target this register.
#
# Returns:
# - (packet, next_byte_ofst): tuple[Packet, int]
#     The decoded packet and the offset of the byte immediately after it.
#
# Raises MalformedPacketError if the header is neither a type-1 nor a type-2
# header, and TruncatedPacketError if the payload runs past the buffer end.
def decode_next(
  byte_bitstream: np.ndarray,
  byte_ofst: int,
  prev_reg_addr: pkt_spec.Register | None = None
) -> tuple[Packet, int]:
  cursor = Cursor(byte_bitstream, byte_ofst)
  packet_hdr = cursor.read_word()

  # Must decode the header as a simple "int" for now as we don't know yet if it's
  # a type-1 or type-2 packet, or some garbage.
  hdr_tpe_int = helpers.bits(packet_hdr, pkt_spec.PACKET_HEADER_TYPE_IDX_HIGH, pkt_spec.PACKET_HEADER_TYPE_IDX_LOW)
  if hdr_tpe_int not in (pkt_spec.Type.TYPE1.value, pkt_spec.Type.TYPE2.value):
    raise MalformedPacketError(byte_ofst, f"Mal-formed packet header 0x{packet_hdr:0>8x} (type field = {hdr_tpe_int}, expected 1 or 2)")

  hdr_tpe = pkt_spec.Type(hdr_tpe_int)
  opcode = pkt_spec.Opcode(helpers.bits(packet_hdr, pkt_spec.PACKET_OPCODE_IDX_HIGH, pkt_spec.PACKET_OPCODE_IDX_LOW))

  if hdr_tpe == pkt_spec.Type.TYPE1:
    reg_addr_int = helpers.bits(packet_hdr, pkt_spec.PACKET_TYPE_1_REGISTER_ADDRESS_IDX_HIGH, pkt_spec.PACKET_TYPE_1_REGISTER_ADDRESS_IDX_LOW)
    if reg_addr_int >= len(pkt_spec.Register):
      raise MalformedPacketError(byte_ofst, f"Mal-formed packet header 0x{packet_hdr:0>8x} (register address 0x{reg_addr_int:x} out of range)")
    reg_addr = pkt_spec.Register(reg_addr_int)
    reserved = helpers.bits(packet_hdr, pkt_spec.PACKET_TYPE_1_RESERVED_IDX_HIGH, pkt_spec.PACKET_TYPE_1_RESERVED_IDX_LOW)
    word_count = helpers.bits(packet_hdr, pkt_spec.PACKET_TYPE_1_WORD_COUNT_IDX_HIGH, pkt_spec.PACKET_TYPE_1_WORD_COUNT_IDX_LOW)
  else:
    reg_addr = prev_reg_addr
    reserved = None
    word_count = helpers.bits(packet_hdr, pkt_spec.PACKET_TYPE_2_WORD_COUNT_IDX_HIGH, pkt_spec.PACKET_TYPE_2_WORD_COUNT_IDX_LOW)

  data = cursor.read_words(word_count)

  packet = Packet(
    hdr_tpe=hdr_tpe,
    opcode=opcode,
    reg_addr=reg_addr,
    reserved=reserved,
    word_count=word_count,
    data=data,
    byte_ofst=byte_ofst
  )
  return (packet, cursor.byte_ofst)

def type_1_header(
  opcode: pkt_spec.Opcode,
  reg_addr: pkt_spec.Register,
  word_count: int,
  reserved: int = 0
) -> int:
  return (
    helpers.place_bits(pkt_spec.Type.TYPE1.value, pkt_spec.PACKET_HEADER_TYPE_IDX_HIGH, pkt_spec.PACKET_HEADER_TYPE_IDX_LOW) |
    helpers.place_bits(opcode.value, pkt_spec.PACKET_OPCODE_IDX_HIGH, pkt_spec.PACKET_OPCODE_IDX_LOW) |
    helpers.place_bits(reg_addr.value, pkt_spec.PACKET_TYPE_1_REGISTER_ADDRESS_IDX_HIGH, pkt_spec.PACKET_TYPE_1_REGISTER_ADDRESS_IDX_LOW) |
    helpers.place_bits(reserved, pkt_spec.PACKET_TYPE_1_RESERVED_IDX_HIGH, pkt_spec.PACKET_TYPE_1_RESERVED_IDX_LOW) |
    helpers.place_bits(word_count, pkt_spec.PACKET_TYPE_1_WORD_COUNT_IDX_HIGH, pkt_spec.PACKET_TYPE_1_WORD_COUNT_IDX_LOW)
  )

def type_2_header(
  opcode: pkt_spec.Opcode,
  word_count: int
) -> int:
  return (
    helpers.place_bits(pkt_spec.Type.TYPE2.value, pkt_spec.PACKET_HEADER_TYPE_IDX_HIGH, pkt_spec.PACKET_HEADER_TYPE_IDX_LOW) |
    helpers.place_bits(opcode.value, pkt_spec.PACKET_OPCODE_IDX_HIGH, pkt_spec.PACKET_OPCODE_IDX_LOW) |
    helpers.place_bits(word_count, pkt_spec.PACKET_TYPE_2_WORD_COUNT_IDX_HIGH, pkt_spec.PACKET_TYPE_2_WORD_COUNT_IDX_LOW)
  )

# A type-1 NOOP with no payload (0x20000000).
def noop_word() -> int:
  return type_1_header(pkt_spec.Opcode.NOOP, pkt_spec.Register.CRC, 0)

# Header + payload words of a type-1 write to `reg_addr`.
def reg_write_words(
  reg_addr: pkt_spec.Register,
  values: list[int]
) -> list[int]:
  return [type_1_header(pkt_spec.Opcode.WRITE, reg_addr, len(values)), *values]

def cmd_write_words(
  cmd: pkt_spec.Command
) -> list[int]:
  return reg_write_words(pkt_spec.Register.CMD, [cmd.value])

# Returns True if the packet is a NOOP.
def is_noop_pkt(
  packet: Packet
) -> bool:
  return packet.opcode == pkt_spec.Opcode.NOOP

# Returns True if the packet is a write to the designated register. We do not
# check what is being written, just the fact that a write is occuring.
def is_reg_write_pkt(
  packet: Packet,
  reg_addr: pkt_spec.Register,
) -> bool:
  is_write_opcode = packet.opcode == pkt_spec.Opcode.WRITE
  is_target_reg = packet.reg_addr == reg_addr
  return is_write_opcode and is_target_reg

# Returns True if the packet is a write to the command register with a matching
# command code.
def is_reg_cmd_write_pkt(
  packet: Packet,
  cmd: pkt_spec.Command
) -> bool:
  return is_reg_write_pkt(packet, pkt_spec.Register.CMD) and (packet.command() == cmd)

# Returns True if the packet has no payload.
def is_empty_pkt(
  packet: Packet
) -> bool:
  return packet.data_size_words() == 0
