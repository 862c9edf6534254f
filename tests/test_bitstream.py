# author: Quickboot tools maintainers

import gzip
import tempfile
import unittest
from pathlib import Path

import numpy as np

import bitstream_factory as factory
import packet as pkt
import packet_spec as pkt_spec
from bitstream import (Bitstream, decode_all_packets, pad_leading_ff,
                       strip_bit_file_header)
from errors import FormatError

class StripHeaderTests(unittest.TestCase):

  def test_strip_bit_file_header(self):
    raw = factory.make_bitstream()
    bit_file = np.frombuffer(factory.make_bit_file(raw), dtype=np.uint8)
    stripped = strip_bit_file_header(bit_file)
    self.assertTrue(np.array_equal(stripped, raw))

  def test_pad_ff(self):
    raw = factory.make_bitstream(pad_ff=32)
    padded = strip_bit_file_header(raw, 288)
    self.assertEqual(padded.size, raw.size - 32 + 288)
    self.assertTrue(np.all(padded[:288] == 0xff))
    self.assertTrue(np.array_equal(padded[288:], raw[32:]))

    # A longer existing run is kept as-is.
    kept = strip_bit_file_header(raw, 8)
    self.assertTrue(np.array_equal(kept, raw))

  def test_result_is_writable_copy(self):
    raw = factory.make_bitstream()
    stripped = strip_bit_file_header(raw)
    stripped[0] = 0
    self.assertEqual(raw[0], 0xff)

  def test_no_ff(self):
    with self.assertRaises(FormatError):
      strip_bit_file_header(np.zeros(16, dtype=np.uint8))

  def test_starts_with_sync_word(self):
    raw = factory.make_bitstream(
      prologue=factory.DEFAULT_PROLOGUE + ((pkt_spec.Register.MASK, 0xffffffff),),
      pad_ff=0,
      bus_width_detect=False
    )
    self.assertTrue(np.array_equal(strip_bit_file_header(raw), raw))

    padded = strip_bit_file_header(raw, 16)
    self.assertTrue(np.all(padded[:16] == 0xff))
    self.assertTrue(np.array_equal(padded[16:], raw))

class PadLeadingFfTests(unittest.TestCase):

  def test_keeps_every_byte(self):
    raw = factory.make_bitstream(pad_ff=0, bus_width_detect=False)
    padded = pad_leading_ff(raw, 288)
    self.assertEqual(padded.size, raw.size + 288)
    self.assertTrue(np.all(padded[:288] == 0xff))
    self.assertTrue(np.array_equal(padded[288:], raw))

  def test_tops_up_existing_run(self):
    raw = factory.make_bitstream(pad_ff=32)
    padded = pad_leading_ff(raw, 288)
    self.assertEqual(padded.size, raw.size + 256)
    self.assertTrue(np.array_equal(padded[256:], raw))

    kept = pad_leading_ff(raw, 8)
    self.assertTrue(np.array_equal(kept, raw))
    kept[0] = 0
    self.assertEqual(raw[0], 0xff)

  def test_no_ff_at_all(self):
    buf = np.arange(8, dtype=np.uint8)
    padded = pad_leading_ff(buf, 4)
    self.assertEqual(padded.tolist(), [0xff] * 4 + list(range(8)))

class HeaderTests(unittest.TestCase):

  def test_parse(self):
    raw = factory.make_bitstream()
    bitstream = Bitstream.from_string(factory.make_bit_file(raw))
    hdr = bitstream.header
    self.assertEqual(hdr.name, "top")
    self.assertEqual(hdr.get_option("Version"), "2020.2")
    self.assertEqual(hdr.get_option("UserID"), "0XFFFFFFFF")
    self.assertIsNone(hdr.get_option("COMPRESS"))
    self.assertEqual(hdr.fpga_part, "7a35tcsg324")
    self.assertEqual(hdr.date, "2024/03/01")
    self.assertEqual(hdr.time, "12:34:56")
    self.assertTrue(np.array_equal(bitstream.data, raw))

  def test_data_starts_at_field_7_value(self):
    # 0xff04 bytes of data, so the field 7 length holds a 0xff byte.
    raw = factory.make_bitstream(num_frame_words=16287)
    self.assertEqual(raw.size, 0xff04)
    bit_file = factory.make_bit_file(raw)

    bitstream = Bitstream.from_string(bit_file)
    self.assertEqual(bitstream.header.bitstream_data_ofst, len(bit_file) - raw.size)
    self.assertTrue(np.array_equal(bitstream.data, raw))

  def test_raw_bitstream_has_no_header(self):
    raw = factory.make_bitstream()
    bitstream = Bitstream.from_string(raw.tobytes())
    self.assertIsNone(bitstream.header)
    self.assertTrue(np.array_equal(bitstream.data, raw))

  def test_bad_tag(self):
    bit_file = bytearray(factory.make_bit_file(factory.make_bitstream()))
    # Tag byte, then 2 bytes of length, then the part name.
    tag_ofst = bit_file.index(b"7a35tcsg324") - 3
    bit_file[tag_ofst] = ord("x")
    with self.assertRaises(FormatError):
      Bitstream.from_string(bytes(bit_file))

  def test_from_file_path(self):
    raw = factory.make_bitstream()
    bit_file = factory.make_bit_file(raw)
    with tempfile.TemporaryDirectory() as tmp_dir:
      plain_path = Path(tmp_dir) / "top.bit"
      plain_path.write_bytes(bit_file)
      gz_path = Path(tmp_dir) / "top.bit.gz"
      with gzip.open(gz_path, "wb") as f:
        f.write(bit_file)

      for path in (plain_path, gz_path):
        bitstream = Bitstream.from_file_path(path)
        self.assertEqual(bitstream.header.fpga_part, "7a35tcsg324")
        self.assertTrue(np.array_equal(bitstream.data, raw))
        # The data must be patchable in place.
        bitstream.data[0] = 0xff

class DecodeTests(unittest.TestCase):

  def test_decode_all_packets(self):
    packets = decode_all_packets(factory.make_bitstream(num_frame_words=16))
    # NOOPs are dropped.
    self.assertFalse(any(pkt.is_noop_pkt(p) for p in packets))
    self.assertEqual([p.reg_addr for p in packets], [
      pkt_spec.Register.AXSS,
      pkt_spec.Register.WBSTAR,
      pkt_spec.Register.COR0,
      pkt_spec.Register.BSPI,
      pkt_spec.Register.FDRI,
      pkt_spec.Register.FDRI,
      pkt_spec.Register.CRC,
      pkt_spec.Register.CMD,
    ])
    self.assertEqual(packets[5].hdr_tpe, pkt_spec.Type.TYPE2)
    self.assertEqual(packets[5].word_count, 16)
    self.assertTrue(pkt.is_reg_cmd_write_pkt(packets[-1], pkt_spec.Command.DESYNC))

  def test_resume_after_desync(self):
    first = factory.make_bitstream(prologue=((pkt_spec.Register.AXSS, 1),), num_frame_words=4)
    second = factory.make_bitstream(prologue=((pkt_spec.Register.AXSS, 2),), num_frame_words=4)
    packets = decode_all_packets(np.concatenate((first, second)))
    axss_values = [int(p.data[0]) for p in packets if pkt.is_reg_write_pkt(p, pkt_spec.Register.AXSS)]
    self.assertEqual(axss_values, [1, 2])
    desyncs = [p for p in packets if pkt.is_reg_cmd_write_pkt(p, pkt_spec.Command.DESYNC)]
    self.assertEqual(len(desyncs), 2)

  def test_sync_word_in_frame_data_is_skipped(self):
    # Frame data holding the sync word pattern must not restart decoding.
    words = [
      pkt.noop_word(),
      pkt.type_1_header(pkt_spec.Opcode.WRITE, pkt_spec.Register.FDRI, 2), 0xaa995566, 0x00000000,
      *pkt.cmd_write_words(pkt_spec.Command.DESYNC),
    ]
    buf = np.concatenate((
      np.full(8, 0xff, dtype=np.uint8),
      np.frombuffer(b"\xaa\x99\x55\x66", dtype=np.uint8),
      np.array(words, dtype=">u4").view(dtype=np.uint8),
    ))
    packets = decode_all_packets(buf)
    self.assertEqual(len(packets), 2)

  def test_no_sync(self):
    with self.assertRaises(FormatError):
      decode_all_packets(np.full(64, 0xff, dtype=np.uint8))

  def test_packets_property(self):
    bitstream = Bitstream(factory.make_bitstream())
    self.assertIs(bitstream.packets, bitstream.packets)
    self.assertIsInstance(bitstream.packets, tuple)
