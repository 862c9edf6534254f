# author: Quickboot tools maintainers

import gzip
from pathlib import Path

import numpy as np

import bitstream_spec as bit_spec
import packet as pkt
import packet_spec as pkt_spec
from errors import FormatError
from magic_locator import find_all_magic, find_magic


# Grows the leading run of 0xff dummy bytes to at least `pad_ff` bytes. No
# byte of the input is dropped.
#
# Args:
# - byte_bitstream: np.ndarray
#     Byte-view of a bitstream without .bit file header.
# - pad_ff: int
#     Minimum number of leading 0xff bytes in the result. The existing run is
#     kept if it is longer.
#
# Returns:
# - padded: np.ndarray
#     A new array holding the missing 0xff bytes followed by the input.
def pad_leading_ff(
  byte_bitstream: np.ndarray,
  pad_ff: int
) -> np.ndarray:
  assert byte_bitstream.itemsize == 1, f"Error: Expected 8-bit view of bitstream."

  non_ff_ofsts = np.flatnonzero(byte_bitstream != bit_spec.ERASED_BYTE)
  ff_count = int(non_ff_ofsts[0]) if non_ff_ofsts.size > 0 else byte_bitstream.size

  pad = np.full(max(0, pad_ff - ff_count), bit_spec.ERASED_BYTE, dtype=np.uint8)
  return np.concatenate((pad, byte_bitstream))

# Returns the offset at which the bitstream data starts.
#
# A .bit file header is skipped using the length of its field 7. A stream that
# starts with an unknown header is cut at the first 0xff byte, unless the SYNC
# WORD comes first, in which case the stream has no header at all.
def bitstream_data_ofst(
  byte_bitstream: np.ndarray
) -> int:
  hdr = Bitstream.Header.parse(byte_bitstream)
  if hdr is not None:
    return hdr.bitstream_data_ofst

  ff_ofsts = np.flatnonzero(byte_bitstream == bit_spec.ERASED_BYTE)
  first_ff_ofst = int(ff_ofsts[0]) if ff_ofsts.size > 0 else byte_bitstream.size

  sync_word_byte_ofst = find_magic(byte_bitstream, bit_spec.SYNC_WORD_MAGIC, 0, first_ff_ofst)
  if sync_word_byte_ofst is not None:
    return 0
  if ff_ofsts.size == 0:
    raise FormatError(byte_bitstream.size, "Unable to find end of header in bit file")
  return first_ff_ofst

# Drops the header of a .bit file (if any) and grows the leading run of 0xff
# dummy bytes to at least `pad_ff` bytes.
#
# Returns a new array that starts with the 0xff run and ends with the bitstream.
def strip_bit_file_header(
  byte_bitstream: np.ndarray,
  pad_ff: int = 0
) -> np.ndarray:
  assert byte_bitstream.itemsize == 1, f"Error: Expected 8-bit view of bitstream."
  return pad_leading_ff(byte_bitstream[bitstream_data_ofst(byte_bitstream):], pad_ff)

# Decodes all packets found in the input array until the next boundary is found.
# We define a boundary as a DESYNC command packet being found, or the end of the
# array.
#
# Args:
# - byte_bitstream: np.ndarray
#     Byte-level view of a bitstream.
# - byte_ofst: int
#     Offset of the first packet (right after a SYNC WORD).
#
# Returns:
# - packets: list[pkt.Packet]
#     Packets found. NOOP packets are skipped as they are just noise.
# - next_byte_ofst: int
#     Offset of the byte right after the last decoded packet.
def _decode_packets_until_next_boundary(
  byte_bitstream: np.ndarray,
  byte_ofst: int
) -> tuple[list[pkt.Packet], int]:
  packets: list[pkt.Packet] = list()
  current_reg_addr = None

  while byte_ofst < byte_bitstream.size:
    (packet, byte_ofst) = pkt.decode_next(byte_bitstream, byte_ofst, current_reg_addr)

    # Type-2 packets that could arrive after this packet use the address of
    # the preceding type-1 packet, so we save it for future iterations.
    if packet.hdr_tpe == pkt_spec.Type.TYPE1:
      current_reg_addr = packet.reg_addr

    # Record packet. We don't store NOOPs as they are just noise.
    if not pkt.is_noop_pkt(packet):
      packets.append(packet)

    if pkt.is_reg_cmd_write_pkt(packet, pkt_spec.Command.DESYNC):
      break

  return (packets, byte_ofst)

# Decodes all packets found in the bitstream, starting at the first SYNC WORD.
# After a DESYNC command, decoding resumes at the next SYNC WORD (if any).
#
# Raises FormatError if the packet framing is broken.
def decode_all_packets(
  byte_bitstream: np.ndarray
) -> list[pkt.Packet]:
  assert byte_bitstream.itemsize == 1, f"Error: Expected 8-bit view of bitstream."

  packets: list[pkt.Packet] = list()

  # IMPORTANT: It is possible that the SYNC_WORD appears as a pattern in the FPGA
  # configuration itself (a word written in the FDRI register). Therefore not all
  # the offsets we find below correspond to true SYNC_WORDs and we skip the ones
  # located inside the packets we already decoded.
  all_sync_word_byte_ofsts = find_all_magic(byte_bitstream, bit_spec.SYNC_WORD_MAGIC)
  if len(all_sync_word_byte_ofsts) == 0:
    raise FormatError(0, "Did not find any SYNC_WORDs in the bitstream")

  after_boundary_byte_ofst = 0
  for sync_word_byte_ofst in all_sync_word_byte_ofsts:
    if sync_word_byte_ofst < after_boundary_byte_ofst:
      continue

    packet_byte_ofst = sync_word_byte_ofst + len(bit_spec.SYNC_WORD_MAGIC)
    (sub_packets, after_boundary_byte_ofst) = _decode_packets_until_next_boundary(byte_bitstream, packet_byte_ofst)
    packets.extend(sub_packets)

  return packets

class Bitstream:
  # Fields of the Xilinx .bit file header.
  class Header:
    def __init__(
      self,
      name: str,
      options: dict[str, str],
      fpga_part: str,
      date: str,
      time: str,
      bitstream_data_ofst: int
    ) -> None:
      self.name = name
      self.options = options
      self.fpga_part = fpga_part
      self.date = date
      self.time = time
      # The bitstream data starts where field 7's value starts.
      self.bitstream_data_ofst = bitstream_data_ofst

    def get_option(self, key: str) -> str | None:
      return self.options.get(key)

    # Parses the TLV header at the start of a .bit file. Returns None if the file
    # does not start with the expected magic (raw .bin streams have no header).
    @staticmethod
    def parse(
      byte_bitstream: np.ndarray
    ):
      def parse_length_value(
        start_ofst: int,
        length_len: int
      ) -> tuple[bytes, int]:
        value_len_bytes: bytes = byte_bitstream[start_ofst : start_ofst + length_len].tobytes()
        if len(value_len_bytes) != length_len:
          raise FormatError(start_ofst, "Truncated bit file header")
        value_len_int = int.from_bytes(value_len_bytes, "big")
        start_ofst += length_len
        value: bytes = byte_bitstream[start_ofst : start_ofst + value_len_int].tobytes()
        if len(value) != value_len_int:
          raise FormatError(start_ofst, "Truncated bit file header")
        return (value, start_ofst + value_len_int)

      def parse_tag_length_value(
        start_ofst: int,
        tag_expected: bytes,
        length_len: int
      ) -> tuple[bytes, int]:
        tag: bytes = byte_bitstream[start_ofst : start_ofst + bit_spec.HEADER_TAG_LENGTH].tobytes()
        if tag != tag_expected:
          raise FormatError(start_ofst, f"Unexpected bit file header tag {tag} (expected {tag_expected})")
        return parse_length_value(start_ofst + bit_spec.HEADER_TAG_LENGTH, length_len)

      def nul_terminated_byte_str_to_str(ntstr: bytes) -> str:
        # Strip nul character before decoding.
        return ntstr.rstrip(b"\x00").decode("utf-8")

      # Length-Value (LV) format. All .bit files are identical up to field 2.
      field_1_expected = len(bit_spec.HEADER_FIELD_1_VALUE_EXPECTED).to_bytes(bit_spec.HEADER_FIELD_1_LENGTH, "big") + bit_spec.HEADER_FIELD_1_VALUE_EXPECTED
      if byte_bitstream[:len(field_1_expected)].tobytes() != field_1_expected:
        return None
      start_ofst = len(field_1_expected)
      (field_2_value, start_ofst) = parse_length_value(start_ofst, bit_spec.HEADER_FIELD_2_LENGTH)
      if field_2_value != bit_spec.HEADER_FIELD_2_VALUE_EXPECTED:
        raise FormatError(start_ofst, f"Unexpected bit file header field 2 value {field_2_value}")
      (field_3_value, start_ofst) = parse_length_value(start_ofst, bit_spec.HEADER_FIELD_3_LENGTH)

      # Tag-Length-Value (TLV) format.
      (field_4_value, start_ofst) = parse_tag_length_value(start_ofst, bit_spec.HEADER_FIELD_4_TAG_EXPECTED, bit_spec.HEADER_FIELD_4_VALUE_LENGTH)
      (field_5_value, start_ofst) = parse_tag_length_value(start_ofst, bit_spec.HEADER_FIELD_5_TAG_EXPECTED, bit_spec.HEADER_FIELD_5_VALUE_LENGTH)
      (field_6_value, start_ofst) = parse_tag_length_value(start_ofst, bit_spec.HEADER_FIELD_6_TAG_EXPECTED, bit_spec.HEADER_FIELD_6_VALUE_LENGTH)
      (field_7_value, start_ofst) = parse_tag_length_value(start_ofst, bit_spec.HEADER_FIELD_7_TAG_EXPECTED, bit_spec.HEADER_FIELD_7_VALUE_LENGTH)

      # The elements are separated by semicolons. The first element is the name of
      # the design, all following elements are key-value-like options separated by
      # an "=" such as COMPRESS=TRUE, Version=2020.2, etc.
      design_and_options = nul_terminated_byte_str_to_str(field_3_value).split(";")
      name = design_and_options[0]
      options = dict()
      for option in design_and_options[1:]:
        (k, _, v) = option.partition("=")
        options[k] = v

      return Bitstream.Header(
        name=name,
        options=options,
        fpga_part=nul_terminated_byte_str_to_str(field_4_value),
        date=nul_terminated_byte_str_to_str(field_5_value),
        time=nul_terminated_byte_str_to_str(field_6_value),
        bitstream_data_ofst=start_ofst - len(field_7_value)
      )

  def __init__(
    self,
    byte_bitstream: np.ndarray,
    pad_ff: int = 0
  ) -> None:
    # Reads and splits a .bit file into
    #
    #   (1) the text header (if any)
    #   (2) the bitstream data (everything after the header)
    #
    # Args:
    # - byte_bitstream: np.ndarray
    #     Byte-view of a .bit file.
    # - pad_ff: int
    #     Minimum number of leading 0xff bytes kept in front of the bitstream data.
    assert byte_bitstream.itemsize == 1, f"Error: Expected 8-bit view of bitstream."

    self._hdr = Bitstream.Header.parse(byte_bitstream)
    if self._hdr is None:
      self._data = strip_bit_file_header(byte_bitstream, pad_ff)
    else:
      self._data = pad_leading_ff(byte_bitstream[self._hdr.bitstream_data_ofst:], pad_ff)

    # Lazy evaluation. The packets are decoded the first time they are requested.
    self._packets: tuple[pkt.Packet, ...] | None = None

  @property
  def header(self):
    return self._hdr

  @property
  def data(self) -> np.ndarray:
    return self._data

  @property
  def packets(self) -> tuple[pkt.Packet, ...]:
    if self._packets is None:
      # Tuple so packet order cannot be changed
      self._packets = tuple(decode_all_packets(self._data))
    return self._packets

  @staticmethod
  def from_file_path(
    bitstream_path: str | Path,
    pad_ff: int = 0
  ):
    if Path(bitstream_path).suffix == ".gz":
      # Decompress file in memory before creating a bitstream object.
      with gzip.open(bitstream_path, "rb") as f:
        data = f.read()
    else:
      with open(bitstream_path, "rb") as f:
        data = f.read()

    return Bitstream.from_string(data, pad_ff)

  @staticmethod
  def from_string(
    bstr: bytes,
    pad_ff: int = 0
  ):
    # We parse the bitstream as uint8 (instead of uint32) as it contains unsynchronized
    # data and we must look for the SYNC WORD before we can interpret the contents
    # as 32-bit words.
    byte_bitstream = np.frombuffer(bstr, dtype=np.uint8)
    return Bitstream(byte_bitstream, pad_ff)
