# author: Quickboot tools maintainers

import unittest

import numpy as np

import helpers
import packet as pkt
import packet_spec as pkt_spec
from cursor import Cursor
from errors import MalformedPacketError, TruncatedPacketError

class PacketTests(unittest.TestCase):

  def test_header_encoding(self):
    self.assertEqual(pkt.noop_word(), 0x20000000)
    self.assertEqual(pkt.type_1_header(pkt_spec.Opcode.WRITE, pkt_spec.Register.WBSTAR, 1), 0x30020001)
    self.assertEqual(pkt.type_1_header(pkt_spec.Opcode.WRITE, pkt_spec.Register.CMD, 1), 0x30008001)
    self.assertEqual(pkt.type_1_header(pkt_spec.Opcode.READ, pkt_spec.Register.STAT, 1), 0x2800e001)
    self.assertEqual(pkt.type_2_header(pkt_spec.Opcode.WRITE, 0x100), 0x50000100)
    self.assertEqual(pkt.cmd_write_words(pkt_spec.Command.IPROG), [0x30008001, 0x0000000f])
    self.assertEqual(pkt.reg_write_words(pkt_spec.Register.BSPI, [0xc]), [0x3003e001, 0x0000000c])

  def test_word_count_overflow(self):
    with self.assertRaises(AssertionError):
      pkt.type_1_header(pkt_spec.Opcode.WRITE, pkt_spec.Register.FDRI, 1 << 11)

  def test_decode_type_1_write(self):
    buf = helpers.words_to_bytes(pkt.reg_write_words(pkt_spec.Register.AXSS, [0x53494c56]))
    (packet, next_ofst) = pkt.decode_next(buf, 0)
    self.assertEqual(packet.hdr_tpe, pkt_spec.Type.TYPE1)
    self.assertEqual(packet.opcode, pkt_spec.Opcode.WRITE)
    self.assertEqual(packet.reg_addr, pkt_spec.Register.AXSS)
    self.assertEqual(packet.word_count, 1)
    self.assertEqual(int(packet.data[0]), 0x53494c56)
    self.assertEqual(packet.header_word(), 0x3001a001)
    self.assertEqual(next_ofst, 8)
    self.assertTrue(pkt.is_reg_write_pkt(packet, pkt_spec.Register.AXSS))
    self.assertFalse(pkt.is_reg_write_pkt(packet, pkt_spec.Register.WBSTAR))

  def test_noop_with_payload_consumes_payload(self):
    words = [pkt.type_1_header(pkt_spec.Opcode.NOOP, pkt_spec.Register.CRC, 3), 1, 2, 3, pkt.noop_word()]
    buf = helpers.words_to_bytes(words)
    (packet, next_ofst) = pkt.decode_next(buf, 0)
    self.assertTrue(pkt.is_noop_pkt(packet))
    self.assertEqual(packet.word_count, 3)
    self.assertEqual(next_ofst, 16)
    self.assertEqual(packet.packet_size_bytes(), 16)

  def test_decode_unaligned(self):
    buf = np.concatenate((
      np.full(3, 0xff, dtype=np.uint8),
      helpers.words_to_bytes(pkt.cmd_write_words(pkt_spec.Command.DESYNC)),
    ))
    (packet, next_ofst) = pkt.decode_next(buf, 3)
    self.assertEqual(packet.byte_ofst, 3)
    self.assertEqual(packet.command(), pkt_spec.Command.DESYNC)
    self.assertTrue(pkt.is_reg_cmd_write_pkt(packet, pkt_spec.Command.DESYNC))
    self.assertEqual(next_ofst, 11)

  def test_type_2_uses_previous_register(self):
    words = [pkt.type_2_header(pkt_spec.Opcode.WRITE, 2), 0xaaaaaaaa, 0xbbbbbbbb]
    buf = helpers.words_to_bytes(words)
    (packet, next_ofst) = pkt.decode_next(buf, 0, pkt_spec.Register.FDRI)
    self.assertEqual(packet.hdr_tpe, pkt_spec.Type.TYPE2)
    self.assertEqual(packet.reg_addr, pkt_spec.Register.FDRI)
    self.assertEqual(packet.word_count, 2)
    self.assertEqual(next_ofst, 12)
    self.assertIn("skip 8 bytes", str(packet))

  def test_truncated_payload(self):
    # WRITE FDRI announcing 4 words, but only 1 present.
    buf = helpers.words_to_bytes([pkt.type_1_header(pkt_spec.Opcode.WRITE, pkt_spec.Register.FDRI, 4), 0])
    with self.assertRaises(TruncatedPacketError) as ctx:
      pkt.decode_next(buf, 0)
    self.assertEqual(ctx.exception.num_bytes_expected, 16)
    self.assertEqual(ctx.exception.num_bytes_available, 4)

  def test_truncated_header(self):
    buf = np.array([0x30, 0x00], dtype=np.uint8)
    with self.assertRaises(TruncatedPacketError):
      pkt.decode_next(buf, 0)

  def test_malformed_type(self):
    buf = helpers.words_to_bytes([0xffffffff])
    with self.assertRaises(MalformedPacketError) as ctx:
      pkt.decode_next(buf, 0)
    self.assertEqual(ctx.exception.byte_ofst, 0)

  def test_malformed_register_address(self):
    # Register address 0x20 does not exist.
    hdr = 0x30000001 | (0x20 << 13)
    buf = helpers.words_to_bytes([hdr, 0])
    with self.assertRaises(MalformedPacketError):
      pkt.decode_next(buf, 0)

  def test_str_shows_command_name(self):
    buf = helpers.words_to_bytes(pkt.cmd_write_words(pkt_spec.Command.IPROG))
    (packet, _) = pkt.decode_next(buf, 0)
    s = str(packet)
    self.assertIn("REG = CMD", s)
    self.assertIn("0x0000000f (IPROG)", s)
    self.assertIn("WORD_COUNT =         1", s)

  def test_empty_packet(self):
    buf = helpers.words_to_bytes([pkt.type_1_header(pkt_spec.Opcode.WRITE, pkt_spec.Register.FDRI, 0)])
    (packet, _) = pkt.decode_next(buf, 0)
    self.assertTrue(pkt.is_empty_pkt(packet))
    self.assertIsNone(packet.command())

class CursorTests(unittest.TestCase):

  def test_read_and_write(self):
    buf = helpers.words_to_bytes([0x11223344, 0x55667788]).copy()
    cursor = Cursor(buf, 4)
    self.assertEqual(cursor.peek_word(), 0x55667788)
    cursor.write_word(0xdeadbeef)
    self.assertTrue(cursor.at_end())
    self.assertEqual(buf.tobytes(), b"\x11\x22\x33\x44\xde\xad\xbe\xef")

  def test_out_of_range(self):
    buf = np.zeros(6, dtype=np.uint8)
    cursor = Cursor(buf, 4)
    with self.assertRaises(TruncatedPacketError) as ctx:
      cursor.read_word()
    self.assertEqual(ctx.exception.byte_ofst, 4)
    with self.assertRaises(TruncatedPacketError):
      cursor.skip(3)
    cursor.skip(2)
    self.assertEqual(cursor.remaining_bytes(), 0)
